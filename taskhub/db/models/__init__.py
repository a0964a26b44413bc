"""taskhub models."""

from pathlib import Path

from taskhub.settings import settings


def load_all_models() -> None:
    """Load the models of every feature app so they register on the metadata."""
    project_root = Path(__file__).resolve().parent.parent.parent
    for app in settings.app_names:
        models_file = project_root / app / "models.py"
        if models_file.exists():
            module_name = f"taskhub.{app}.models"
            __import__(module_name)
