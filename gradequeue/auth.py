"""
Supabase JWT Authentication for the grading-queue backend.

Every /api/ request except the health check must carry a Supabase access
token. The token's ``sub`` claim is the user id that Canvas credentials are
looked up under.
"""
import os
import logging

import jwt
from flask import request, jsonify, g

logger = logging.getLogger(__name__)

# Routes that don't require authentication
PUBLIC_ROUTES = frozenset({
    '/api/health',
})

LOCAL_DEV_USER = 'local-dev'


def get_jwt_secret():
    """Get the Supabase JWT secret from environment."""
    secret = os.getenv('SUPABASE_JWT_SECRET')
    if not secret:
        raise RuntimeError('SUPABASE_JWT_SECRET not configured')
    return secret


def bearer_token(header):
    """Return the token from an ``Authorization: Bearer ...`` header, or None."""
    scheme, _, token = (header or '').partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def decode_user(token):
    """
    Validate a Supabase JWT and return ``(user_id, email)``.
    Returns None if the token is invalid, expired or has no subject.
    """
    try:
        claims = jwt.decode(
            token,
            get_jwt_secret(),
            algorithms=['HS256'],
            audience='authenticated',
        )
    except jwt.InvalidTokenError as e:
        logger.debug("Rejected access token: %s", e)
        return None
    if not claims.get('sub'):
        return None
    return claims['sub'], claims.get('email', '')


def needs_auth(path, method):
    if not path.startswith('/api/'):
        return False
    # CORS preflight never carries the Authorization header
    if method == 'OPTIONS':
        return False
    return path not in PUBLIC_ROUTES


def init_auth(app, local_dev=False):
    """
    Register the before_request auth hook on the Flask app.

    With ``local_dev`` every request runs as the ``local-dev`` user and no
    token is read.
    """
    @app.before_request
    def check_auth():
        if not needs_auth(request.path, request.method):
            return None

        if local_dev:
            g.user_id, g.user_email = LOCAL_DEV_USER, ''
            return None

        token = bearer_token(request.headers.get('Authorization'))
        if token is None:
            return jsonify({'error': 'Authentication required'}), 401

        user = decode_user(token)
        if user is None:
            return jsonify({'error': 'Invalid or expired token'}), 401

        g.user_id, g.user_email = user
        return None
