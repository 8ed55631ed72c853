# cloudcall_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os

from flask import Flask
from config import Config, TestingConfig, StagingConfig, ProductionConfig
from .extensions import db, migrate, scheduler, init_extensions, init_scheduler, register_cli
from .services.gateway_service import init_gateway
from .blueprints.billing import bp as billing_bp

def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app_env = os.getenv("APP_ENV", "").lower()

    if config_object is not None:
        app.config.from_object(config_object)
    elif app_env == "testing":
        app.config.from_object(TestingConfig)
    elif app_env == "staging":
        app.config.from_object(StagingConfig)
    elif app_env == "production":
        app.config.from_object(ProductionConfig)
    else:
        app.config.from_object(Config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Extensions (DB/Migrate)
    init_extensions(app)
    # Gateway client -> app.extensions["paypal"]
    init_gateway(app)

    # Blueprints
    app.register_blueprint(billing_bp)
    # CLI (e.g. flask init-db, flask reconcile-subscriptions)
    register_cli(app)

    # Scheduler (pending subscription sweep)
    if not app.config.get("TESTING") and os.getenv("DISABLE_SCHEDULER") != "1":
        init_scheduler(app)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok", "scheduler": scheduler.running}

    return app


__all__ = ["create_app", "db", "migrate"]
