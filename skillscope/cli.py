#!/usr/bin/env python3
"""Command line client for a SkillScope server"""

import argparse
import json
import os
import sys

from dotenv import load_dotenv

from .client import ChatSession, SkillScopeClient
from .errors import SkillScopeError
from .models import AssistanceType

ENV_PATH = "~/.config/skillscope/.env"


def parse_arguments(argv=None):
    """ArgParse argument parsing"""
    parser = argparse.ArgumentParser(description="SkillScope command line client")
    parser.add_argument("--url", default=None, help="Server URL (default: $SKILLSCOPE_URL)")
    parser.add_argument("--api-key", default=None, help="API key (default: $SKILLSCOPE_API_KEY)")
    parser.add_argument("--timeout", type=float, default=60, help="Request timeout in seconds")

    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="Analyze a technology topic")
    analyze.add_argument("topic", help="Topic to analyze")

    mind_map = commands.add_parser("mind-map", help="Generate a learning mind map")
    mind_map.add_argument("topic", help="Topic of the mind map")
    mind_map.add_argument("--interest-area", default=None, help="Area of interest")
    mind_map.add_argument(
        "--skill-level",
        choices=["beginner", "intermediate", "advanced"],
        default="beginner",
        help="Skill level",
    )
    mind_map.add_argument("--layout", action="store_true", help="Print positioned nodes and edges")
    mind_map.add_argument("--save", action="store_true", help="Save the mind map on the server")

    chat = commands.add_parser("chat", help="Chat with the learning assistant")
    chat.add_argument("-m", "--message", default=None, help="Send one message and exit")
    chat.add_argument("--conversation", default=None, help="Continue an existing conversation")
    chat.add_argument(
        "-t",
        "--type",
        dest="assistance_type",
        choices=[member.value for member in AssistanceType],
        default=AssistanceType.GENERAL.value,
        help="Assistance type",
    )
    chat.add_argument(
        "-i", "--interest", action="append", default=None, help="Interest (repeatable)"
    )

    return parser.parse_args(argv)


def print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def interactive_chat(session: ChatSession):
    """Read messages from stdin until EOF; '/type <kind>' switches assistance type"""
    print(f"conversation: {session.start()}  (Ctrl-D to quit)")
    while True:
        try:
            message = input("> ")
        except EOFError:
            print()
            return
        if not message.strip():
            continue
        try:
            if message.startswith("/type "):
                session.switch(message[len("/type "):].strip())
                print(f"assistance type: {session.assistance_type}")
                continue
            print(session.send(message))
        except SkillScopeError as e:
            print(f"error: {e.message}", file=sys.stderr)


def run(args, client: SkillScopeClient):
    if args.command == "analyze":
        print_json(client.analyze_topic(args.topic).to_wire())

    elif args.command == "mind-map":
        graph = client.generate_mind_map(
            args.topic, interest_area=args.interest_area, skill_level=args.skill_level
        )
        if args.save:
            client.save_mind_map(
                args.topic, graph, interest_area=args.interest_area, skill_level=args.skill_level
            )
        print_json(client.layout(graph) if args.layout else graph.to_wire())

    elif args.command == "chat":
        session = ChatSession(
            client,
            conversation_id=args.conversation,
            assistance_type=args.assistance_type,
            user_interests=args.interest,
        )
        if args.message is None:
            interactive_chat(session)
        else:
            print(session.send(args.message))


def main(argv=None):
    args = parse_arguments(argv)
    load_dotenv(os.path.expanduser(ENV_PATH))

    client = SkillScopeClient(base_url=args.url, api_key=args.api_key, timeout=args.timeout)
    try:
        run(args, client)
    except SkillScopeError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
