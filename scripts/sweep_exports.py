"""
Run the export retention jobs once, outside the API process.

Usage (from project root):
    python -m scripts.sweep_exports [--expired] [--artifacts] [--max-age-days N] [--reconcile]

Without flags it runs both retention sweeps. --reconcile also fails jobs left
Processing by a crashed server and re-runs Pending ones, waiting for them.
"""
import argparse

from db import SessionLocal
from insights.core.container import build_services
from insights.core.logging_utils import configure_logging
from insights.core.settings import settings


def main():
    parser = argparse.ArgumentParser(description='Sweep expired exports and stale archives')
    parser.add_argument('--expired', action='store_true', help='Only soft-delete expired jobs')
    parser.add_argument('--artifacts', action='store_true', help='Only purge old archive files')
    parser.add_argument('--max-age-days', type=int, default=None, help='Archive age cutoff')
    parser.add_argument('--reconcile', action='store_true', help='Recover interrupted jobs first')
    args = parser.parse_args()

    configure_logging(settings)
    services = build_services(settings, SessionLocal)
    run_all = not (args.expired or args.artifacts)
    try:
        if args.reconcile:
            result = services.exports.reconcile_orphans()
            print(f"Failed {result['failed']} interrupted jobs, requeued {result['requeued']}")
        if run_all or args.expired:
            print(f"Swept {services.exports.sweep_expired()} expired exports")
        if run_all or args.artifacts:
            removed = services.exports.sweep_stale_artifacts(args.max_age_days)
            print(f"Purged {removed} stale archives")
    finally:
        # Requeued jobs finish before the pool closes
        services.shutdown(wait_for_exports=True)


if __name__ == '__main__':
    main()
