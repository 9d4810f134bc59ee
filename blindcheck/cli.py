import argparse
import logging
import sys
import threading
from typing import List, Optional

from colorama import Fore, Style, init

from .collector import CallbackServer
from .config import EngineConfig, load_config
from .core.payloads import PayloadCompiler
from .core.poller import BackoffPolicy, ConfirmationPoller
from .core.registry import HttpCallbackRegistry
from .core.token import TokenSource
from .errors import BlindCheckError
from .models import (
    ConfirmationOutcome, CorrelationToken, DeliveryMode, ExecutionEnvironment,
    PayloadSpec, Protocol, VulnerabilityClass,
)

EXIT_CODES = {
    ConfirmationOutcome.CONFIRMED: 0,
    ConfirmationOutcome.NOT_CONFIRMED: 1,
    ConfirmationOutcome.ERROR: 2,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blindcheck",
        description="Out-of-band callback payloads and confirmation polling for blind vulnerabilities.",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_callback_options(p):
        group = p.add_argument_group("Callback Server")
        group.add_argument("-c", "--config", help="Path to YAML config (callback_server section)")
        group.add_argument("--callback-address", help="IP or host the target calls back to")
        group.add_argument("--callback-port", type=int)
        group.add_argument("--callback-domain", help="Wildcard DNS domain served by the collector")
        group.add_argument("--polling-uri", help="Collector polling endpoint")

    p_payload = sub.add_parser("payload", help="Generate a fresh callback payload")
    add_callback_options(p_payload)
    p_payload.add_argument("--env", required=True, choices=[e.value for e in ExecutionEnvironment])
    p_payload.add_argument("--vuln", default=VulnerabilityClass.BLIND_RCE.value,
                           choices=[v.value for v in VulnerabilityClass])
    p_payload.add_argument("--delivery", default=DeliveryMode.DIRECT.value,
                           choices=[d.value for d in DeliveryMode])

    p_poll = sub.add_parser("poll", help="Poll the collector for an existing secret")
    add_callback_options(p_poll)
    p_poll.add_argument("--secret", required=True, help="Hex secret printed by 'payload'")
    p_poll.add_argument("--deadline", type=float, required=True, help="Polling budget in seconds")
    p_poll.add_argument("--protocol", default=Protocol.ANY.value, choices=[p.value for p in Protocol])

    p_serve = sub.add_parser("serve", help="Run the local callback collector")
    p_serve.add_argument("--bind", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8881)
    return parser


def resolve_config(args) -> EngineConfig:
    config = load_config(args.config) if args.config else EngineConfig()
    overrides = {
        "callback_address": args.callback_address,
        "callback_port": args.callback_port,
        "callback_domain": args.callback_domain,
        "polling_uri": args.polling_uri,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    config.validate()
    return config


def cmd_payload(args) -> int:
    config = resolve_config(args)
    token = TokenSource().next()
    spec = PayloadSpec(
        environment=ExecutionEnvironment(args.env),
        vulnerability_class=VulnerabilityClass(args.vuln),
        delivery=DeliveryMode(args.delivery),
    )
    payload = PayloadCompiler(config).compile(spec, token)
    print(f"{Fore.GREEN}[+] Payload ({payload.template_name}):{Style.RESET_ALL}")
    print(payload.payload)
    print(f"[*] cbid:   {token.cbid}")
    print(f"[*] secret: {token.secret_hex}")
    return 0


def cmd_poll(args) -> int:
    config = resolve_config(args)
    if args.deadline <= 0:
        print(f"{Fore.RED}[!] --deadline must be positive.{Style.RESET_ALL}")
        return EXIT_CODES[ConfirmationOutcome.ERROR]
    if not config.polling_uri:
        print(f"{Fore.RED}[!] No polling URI configured.{Style.RESET_ALL}")
        return EXIT_CODES[ConfirmationOutcome.ERROR]
    try:
        token = CorrelationToken.from_secret_hex(args.secret)
    except ValueError:
        print(f"{Fore.RED}[!] Secret must be hex.{Style.RESET_ALL}")
        return EXIT_CODES[ConfirmationOutcome.ERROR]

    poller = ConfirmationPoller(
        HttpCallbackRegistry(config.polling_uri, verify_tls=config.verify_tls),
        backoff=BackoffPolicy(config.initial_interval, config.max_interval, config.backoff_multiplier),
        attempt_timeout=config.attempt_timeout,
    )
    cancel = threading.Event()
    print(f"[*] Polling for cbid {token.cbid} (budget {args.deadline:g}s)...")
    try:
        outcome = poller.confirm(token, Protocol(args.protocol), args.deadline, cancel)
    except KeyboardInterrupt:
        cancel.set()
        outcome = ConfirmationOutcome.NOT_CONFIRMED

    if outcome == ConfirmationOutcome.CONFIRMED:
        print(f"{Fore.RED}[+] CONFIRMED: callback received.{Style.RESET_ALL}")
    elif outcome == ConfirmationOutcome.ERROR:
        print(f"{Fore.YELLOW}[!] ERROR: collector unreachable, result indeterminate.{Style.RESET_ALL}")
    else:
        print(f"{Fore.GREEN}[-] NOT CONFIRMED: no callback observed.{Style.RESET_ALL}")
    return EXIT_CODES[outcome]


def cmd_serve(args) -> int:
    server = CallbackServer(port=args.port, bind_address=args.bind)
    server.start()
    print(f"[*] Callback server listening on {args.bind}:{server.port} (Ctrl+C to stop)")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        print("\n[!] Stopping callback server...")
    finally:
        server.stop()
    return 0


COMMANDS = {
    "payload": cmd_payload,
    "poll": cmd_poll,
    "serve": cmd_serve,
}


def main(argv: Optional[List[str]] = None):
    init(autoreset=True)
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        code = COMMANDS[args.command](args)
    except BlindCheckError as e:
        print(f"{Fore.RED}[!] {e}{Style.RESET_ALL}")
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
