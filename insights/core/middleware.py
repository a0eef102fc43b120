from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

# Local dev servers and in-browser web containers
LOCAL_ORIGIN_REGEX = r"^https?://(localhost(:\d+)?|[\w.-]*webcontainer-api\.io)$"


def add_compression_middleware(app):
    app.add_middleware(GZipMiddleware, minimum_size=500)


def add_cors_middleware(app, settings):
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(getattr(settings, "CORS_EXTRA_ORIGINS", ()) or ()),
        allow_origin_regex=LOCAL_ORIGIN_REGEX if settings.CORS_ALLOW_LOCALHOST else None,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        allow_credentials=True,
    )
