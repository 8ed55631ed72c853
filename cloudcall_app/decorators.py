# cloudcall_app/decorators.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from functools import wraps
from flask import session, jsonify

# session["user"] is filled by the auth layer: {"id", "tenant_id", "role"}

def current_tenant_id():
    user = session.get("user") or {}
    return user.get("tenant_id")

def tenant_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if not current_tenant_id():
            return jsonify(error="Authentication required"), 401
        return view_func(*args, **kwargs)
    return wrapper

def admin_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        user = session.get("user")
        if not user:
            return jsonify(error="Authentication required"), 401
        if user.get("role") != "admin":
            return jsonify(error="Admin access required"), 403
        return view_func(*args, **kwargs)
    return wrapper
