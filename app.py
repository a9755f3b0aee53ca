#!/usr/bin/env python3
"""SkillScope API server"""

import argparse
import os

from dotenv import load_dotenv

from skillscope import SkillScopeServer

ENV_PATH = "~/.config/skillscope/.env"


def parse_arguments():
    """ArgParse argument parsing"""
    parser = argparse.ArgumentParser(description="SkillScope server application")

    parser.add_argument(
        "-l", "--listen", type=str, default="localhost", help="Hostname/IP to listen on"
    )
    parser.add_argument(
        "-p", "--port", type=int, default=13337, help="Port to listen on"
    )
    parser.add_argument(
        "-d", "--debug", action="store_true", default=False, help="Werkzeug debug mode"
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to config JSON file (default: $CONFIG_PATH, else built-in defaults)",
    )

    return parser.parse_args()


def start():
    """Meant to be used by Gunicorn"""
    load_dotenv(os.path.expanduser(ENV_PATH))
    return SkillScopeServer().app


if __name__ == "__main__":
    cli_args = parse_arguments()
    load_dotenv(os.path.expanduser(ENV_PATH))
    SkillScopeServer("SkillScope", cli_args.config).app.run(
        host=cli_args.listen, port=cli_args.port, debug=cli_args.debug
    )
