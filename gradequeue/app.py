#!/usr/bin/env python3
"""
Grading Queue Backend
=====================
Run: python3 -m gradequeue.app
Then call: http://localhost:3000/api/grading-queue
"""

import logging
from dataclasses import dataclass

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from gradequeue import __version__
from gradequeue.auth import init_auth
from gradequeue.config import HOST, PORT, DEBUG, LOCAL_DEV, config
from gradequeue.routes import register_routes
from gradequeue.services.canvas_fetcher import RateLimitedFetcher
from gradequeue.services.credentials import (
    CredentialResolver, SessionCache, SupabaseCredentialStore,
)
from gradequeue.services.grading_queue import GradingQueueAggregator
from gradequeue.services.refresh import QueueRefresher

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived objects shared by the route blueprints."""
    resolver: CredentialResolver
    fetcher: RateLimitedFetcher
    aggregator: GradingQueueAggregator
    refresher: QueueRefresher


def build_services(store=None, fetcher=None, cache=None):
    """Wire the credential store, Canvas fetcher, aggregator and refresher together."""
    cache = cache if cache is not None else SessionCache(ttl=config.credential_cache_ttl)
    resolver = CredentialResolver(store or SupabaseCredentialStore(), cache=cache)
    fetcher = fetcher or RateLimitedFetcher(
        timeout=config.canvas_timeout,
        max_retries=config.canvas_max_retries,
        backoff_base=config.canvas_backoff_base,
        pacing_delay=config.canvas_pacing_delay,
    )
    aggregator = GradingQueueAggregator(resolver, fetcher, max_workers=config.course_workers)
    return Services(
        resolver=resolver,
        fetcher=fetcher,
        aggregator=aggregator,
        refresher=QueueRefresher(aggregator),
    )


def create_app(services=None, local_dev=None):
    app = Flask(__name__)
    CORS(app)

    # ══════════════════════════════════════════════════════════════
    # AUTHENTICATION
    # ══════════════════════════════════════════════════════════════
    init_auth(app, local_dev=LOCAL_DEV if local_dev is None else local_dev)

    services = services or build_services()
    app.extensions['gradequeue'] = services
    register_routes(app, services)

    @app.route('/api/health')
    def health():
        return jsonify({"status": "ok", "version": __version__})

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        # Routing errors (404, 405) keep their own responses
        if isinstance(e, HTTPException):
            return e
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": str(e)}), 500

    return app


def main():
    logging.basicConfig(
        level=logging.DEBUG if DEBUG else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app()
    logger.info("Grading queue backend listening on %s:%s", HOST, PORT)
    app.run(host=HOST, port=PORT, debug=DEBUG, threaded=True)


if __name__ == '__main__':
    main()
