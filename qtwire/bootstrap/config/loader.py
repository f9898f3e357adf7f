import argparse
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

CONFIG_ENV = "QTWIRECONFIG"
DEFAULT_CONFIG = "qtwire.yaml"


@lru_cache
def get_cli_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="qtwire-echo",
        description=(
            "Serve QDataStream packets back to their sender.\n\n"
            "Every packet is decoded with the configured message type and user\n"
            "types, logged, then re-encoded. Options below override the matching\n"
            "entries of the configuration file."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "-c", "--config",
        type=Path,
        help=f"YAML configuration file (default: ${CONFIG_ENV} or ./{DEFAULT_CONFIG})"
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity. Set QTWIREDEBUG=1 to trace the codec alone.",
    )

    server = parser.add_argument_group("server overrides")
    server.add_argument("--host", type=str, help="Bind address (server.host)")
    server.add_argument("--port", type=int, help="TCP port, 0 for any (server.port)")

    codec = parser.add_argument_group("codec overrides")
    codec.add_argument(
        "-t", "--message-type",
        type=str,
        help=(
            "Shape of top-level messages (codec.message_type):\n"
            "QVariant, a base type such as STRING, or a user type name."
        ),
    )
    codec.add_argument(
        "--max-packet-size",
        type=int,
        help="Largest accepted body in bytes (codec.max_packet_size)",
    )
    codec.add_argument(
        "--no-framing",
        dest="framed",
        action="store_false",
        default=None,
        help="Send bodies without length prefix (codec.framed)",
    )
    codec.add_argument(
        "--no-null-flag",
        dest="variant_null_flag",
        action="store_false",
        default=None,
        help="QVariant envelopes without is-null byte, Qt < 4.2 (codec.variant_null_flag)",
    )

    return parser.parse_args()


_OVERRIDES = {
    "server": ("host", "port"),
    "codec": ("message_type", "max_packet_size", "framed", "variant_null_flag"),
}


def get_cli_overrides() -> dict[str, dict[str, Any]]:
    """
    Configuration sections set on the command line, shaped like the YAML
    file so they can be merged over it.
    """
    args = vars(get_cli_args())
    overrides: dict[str, dict[str, Any]] = {}
    for section, keys in _OVERRIDES.items():
        values = {key: args[key] for key in keys if args.get(key) is not None}
        if values:
            overrides[section] = values
    return overrides


@lru_cache
def get_configfile() -> Path:
    file = get_cli_args().config
    if file is None:
        raw = os.getenv(CONFIG_ENV)
        file = Path(raw) if raw else Path.cwd() / DEFAULT_CONFIG

    if not file.is_file():
        raise SystemExit(
            f"[config] Configuration file not found: '{file}'.\n"
            f"  Pass --config, set {CONFIG_ENV} or create ./{DEFAULT_CONFIG}."
        )

    return file
