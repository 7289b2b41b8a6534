import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env, overriding any existing ones
load_dotenv(override=True)


# Start the server
def start():
    """Launches the Uvicorn server."""
    from app.utils.config import Settings

    settings = Settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.app_env == "local",
    )


if __name__ == "__main__":
    start()
