"""SkillScope API server"""

import hmac
import logging
from typing import Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .config import PACKAGE_DIR, Config, load_config
from .decorators import SessionContext
from .errors import SkillScopeError
from .generator import Generator
from .routes import register_routes
from .services import Assistant
from .store import Store
from .variable_handler import PatternLoader, VariableHandler
from .views import register_views


class SkillScopeServer:
    """Flask server exposing the analysis, mind-map and chat relays plus the HTML pages"""

    def __init__(
        self,
        name: str = "SkillScope",
        config_path: Optional[str] = None,
        config: Optional[Config] = None,
    ):
        self.config = config if config is not None else load_config(config_path)

        self.app = Flask(name, template_folder=str(PACKAGE_DIR / "templates"))
        self.app.logger.setLevel(logging.INFO)
        CORS(
            self.app,
            origins=self.config.cors.origins,
            allow_headers=self.config.cors.allow_headers,
        )

        self.variable_handler = VariableHandler(self.config)
        self.patterns = PatternLoader(self.config, self.variable_handler)
        self.store = Store(self.config)
        self.generator = Generator(self.config)
        self.assistant = Assistant(self.config, self.generator, self.store, self.patterns)

        self.add_preflight()
        register_routes(self)
        register_views(self)
        self.add_errorhandlers()

    def check_auth_token(self, token: str) -> Optional[SessionContext]:
        """Verify authentication token"""
        for user, details in self.config.users.items():
            if hmac.compare_digest(details.api_key.encode("utf-8"), token.encode("utf-8")):
                return SessionContext(user_id=user, realname=details.realname)
        return None

    def add_preflight(self):
        """Answer CORS preflight with an empty body before auth runs; flask-cors adds the headers"""

        @self.app.before_request
        def preflight():
            if request.method == "OPTIONS":
                return Response(status=204)
            return None

    def add_errorhandlers(self):
        """Register Flask error handlers"""

        @self.app.errorhandler(SkillScopeError)
        def skillscope_error(exception: SkillScopeError):
            if exception.status_code >= 500:
                self.app.logger.error("Error occured: %s", exception, exc_info=exception.__cause__)
            return jsonify(exception.to_dict()), exception.status_code

        @self.app.errorhandler(404)
        def not_found(exception):
            return jsonify({"error": "The requested resource was not found."}), 404

        @self.app.errorhandler(405)
        def method_not_allowed(exception):
            return jsonify({"error": "Method not allowed."}), 405

        @self.app.errorhandler(Exception)
        def server_error(exception):
            if isinstance(exception, HTTPException):
                return jsonify({"error": exception.description}), exception.code
            self.app.logger.exception("Error occured: %s", exception)
            return jsonify({"error": "An internal server error occurred."}), 500
