import modal

# Modal setup
app = modal.App("imagemagick-web-api")

# Persistent volume holding public/uploads and public/processed
public_volume = modal.Volume.from_name("imagemagick-public", create_if_missing=True)

PUBLIC_DIR = "/data/public"

# Web image: ImageMagick CLI plus the API's Python dependencies
web_image = (
    modal.Image.debian_slim(python_version="3.11")
    .apt_install(["imagemagick"])
    .pip_install([
        "fastapi>=0.104.1",
        "pydantic>=2.5.0",
        "python-multipart>=0.0.6",
        "pillow>=10.1.0",
    ])
    .env({"PUBLIC_DIR": PUBLIC_DIR})
    .add_local_python_source("magick_api")
)


# FastAPI web service
# The rate limiter lives in process memory, so keep a single container
@app.function(
    image=web_image,
    volumes={PUBLIC_DIR: public_volume},
    max_containers=1,
    timeout=600,
)
@modal.asgi_app()
def fastapi_app():
    from magick_api.core.api import create_app
    from magick_api.core.config import Settings

    return create_app(Settings())


# Auto cleanup function - runs every hour to delete files older than 24 hours
@app.function(
    image=web_image,
    schedule=modal.Cron("0 * * * *"),
    timeout=300,  # 5 minute timeout to prevent hanging
    memory=512,
    volumes={PUBLIC_DIR: public_volume},
)
def cleanup_expired_files():
    """Sweep uploads and processed outputs older than the retention window"""
    from magick_api.core.config import Settings
    from magick_api.core.logger import setup_logger
    from magick_api.utils.cleanup import sweep_directories

    settings = Settings()
    setup_logger(settings.log_level)

    # Reload volume to get latest state
    public_volume.reload()

    result = sweep_directories(
        [settings.upload_dir, settings.processed_dir],
        settings.retention_max_age_seconds,
    )

    # Only commit if we actually deleted files
    if result.deleted:
        public_volume.commit()

    return f"Scanned {result.scanned} files, deleted {len(result.deleted)} expired files"
