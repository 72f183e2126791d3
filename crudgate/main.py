import uvicorn

from crudgate.core.app_factory import create_app

app = create_app()


def run() -> None:
    """Serve the app with uvicorn (``crudgate`` console script)."""
    uvicorn.run("crudgate.main:app", host="0.0.0.0", port=8000, log_config=None)
