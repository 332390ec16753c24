"""
sandshell CLI.

Usage:
    sandshell server                   # Start server in foreground
    sandshell server --port 9000       # Override listening port
    sandshell config show              # Show effective config
    sandshell doctor                   # Run diagnostics
"""

import argparse
import asyncio
import socket
import sys

from sandshell.config import Settings, get_config_path, get_settings


# --- Helpers ---


def _port_in_use(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(("127.0.0.1", port)) == 0


# --- Server ---


def cmd_server(args: argparse.Namespace) -> None:
    """Start the server in the foreground."""
    settings = get_settings()
    host = args.host or settings.host
    port = args.port or settings.port

    print(f"Starting sandshell on {host}:{port} (image: {settings.sandbox_image})")

    try:
        import uvicorn
        uvicorn.run(
            "sandshell.server:app",
            host=host,
            port=port,
            log_level=settings.log_level.lower(),
        )
    except KeyboardInterrupt:
        print("\nServer stopped.")


# --- Config commands ---


def cmd_config(args: argparse.Namespace) -> None:
    """Config management: show."""
    action = getattr(args, "action", None)

    if action == "show":
        _config_show(get_settings())
    else:
        print("Usage: sandshell config show")


def _config_show(settings: Settings) -> None:
    """Show effective settings and the isolation policy they produce."""
    config_file = get_config_path()
    print(f"\nConfig: {config_file}{'' if config_file.exists() else ' (not found, using env/defaults)'}")
    print("-" * 40)

    for key, value in settings.model_dump().items():
        print(f"  {key}: {value}")

    policy = settings.policy()
    print("\nIsolation policy:")
    print(f"  image:    {policy.image}")
    print(f"  memory:   {policy.memory_bytes} bytes (swap disabled)")
    print(f"  cpu:      {policy.cpu_quota}/{policy.cpu_period}us ({policy.cpus:.2f} CPU)")
    print(f"  pids:     {policy.pids_limit}")
    print(f"  network:  {'disabled' if policy.network_disabled else 'enabled'}")
    print(f"  user:     {policy.user}, cap_drop={','.join(policy.cap_drop)}")
    for path, options in policy.tmpfs.items():
        print(f"  tmpfs:    {path} ({options})")


# --- Doctor ---


def cmd_doctor(args: argparse.Namespace) -> None:
    """Run diagnostics and report pass/warn/fail for each check."""
    settings = get_settings()
    results = []

    def check(name: str, fn):
        try:
            ok, detail = fn()
            status = "PASS" if ok else "WARN"
            results.append((status, name, detail))
        except Exception as e:
            results.append(("FAIL", name, str(e)))

    def check_python():
        v = sys.version_info
        version_str = f"{v.major}.{v.minor}.{v.micro}"
        if v >= (3, 10):
            return True, version_str
        return False, f"{version_str} (requires >= 3.10)"

    check("Python version", check_python)

    def check_config():
        config_file = get_config_path()
        if not config_file.exists():
            return True, f"{config_file} not found (env/defaults in use)"
        return True, str(config_file)

    check("Config file", check_config)

    def check_docker():
        from sandshell.core.docker_provider import DockerProvider

        provider = DockerProvider(settings.docker_base_url)
        if not asyncio.run(provider.ping()):
            return False, f"not reachable at {settings.docker_base_url}"
        has_image = asyncio.run(provider.image_exists(settings.sandbox_image))
        status = "present" if has_image else "missing (pulled on first session)"
        return True, f"running, image {settings.sandbox_image} {status}"

    check("Docker", check_docker)

    def check_port():
        if _port_in_use(settings.port):
            return False, f"port {settings.port} in use"
        return True, f"port {settings.port} available"

    check("Port", check_port)

    print("\nsandshell doctor")
    print("-" * 40)
    for status, name, detail in results:
        print(f"  [{status}] {name}: {detail}")

    if any(status == "FAIL" for status, _, _ in results):
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="sandshell",
        description="sandshell: per-session sandboxed shells over WebSocket",
    )
    subparsers = parser.add_subparsers(dest="command")

    # server
    server_parser = subparsers.add_parser("server", help="Run the server in the foreground")
    server_parser.add_argument("--host", help="Bind address (default from config)")
    server_parser.add_argument("--port", type=int, help="Listening port (default from config)")

    # doctor
    subparsers.add_parser("doctor", help="Run diagnostics")

    # config subcommand
    config_parser = subparsers.add_parser("config", help="Configuration")
    config_sub = config_parser.add_subparsers(dest="action")
    config_sub.add_parser("show", help="Show effective config")

    args = parser.parse_args()

    if args.command == "server":
        cmd_server(args)
    elif args.command == "doctor":
        cmd_doctor(args)
    elif args.command == "config":
        cmd_config(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
