from __future__ import annotations

from services.backend.app.settings import SETTINGS, BackendSettings


def is_cloud_environment(settings: BackendSettings = SETTINGS) -> bool:
    return settings.deployment_mode == "cloud"
