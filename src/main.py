"""
FastAPI Production Application

Main entry point for the Site Analytics API.
"""

from src.serving.api.main import create_api_app

app = create_api_app()


if __name__ == "__main__":
    import uvicorn
    from src.config import get_settings
    
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
