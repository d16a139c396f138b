"""Observability bootstrap: JSON logging, request context and metrics."""

from __future__ import annotations

from fastapi import FastAPI

from anonchat.obs import logging as obs_logging
from anonchat.obs import middleware
from anonchat.settings import settings


def init(app: FastAPI) -> None:
	"""Install request ids on every app; logging and metrics only when OBS_ENABLED."""
	if settings.obs_enabled:
		obs_logging.configure_logging()
	middleware.install(app, instrument=settings.obs_enabled)


__all__ = ["init"]
