"""
Default options for the wallet clients.

Defaults are built in, then overridden by the wallet settings in the [appdefaults] section of
krb5.conf, then by WALLET_* environment variables. Command-line flags override all of these.
"""
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

DEFAULT_TYPE = "wallet"
DEFAULT_PORT = 0
DEFAULT_KRB5_CONFIG = "/etc/krb5.conf"

_SECTION_RE = re.compile(r"^\[(?P<name>[^\]]+)\]")
_ASSIGN_RE = re.compile(r"^(?P<key>[^=\s]+)\s*=\s*(?P<value>.*)$")


@dataclass
class WalletOptions:
    type: str = DEFAULT_TYPE
    server: Optional[str] = None
    port: int = DEFAULT_PORT
    principal: Optional[str] = None
    user: Optional[str] = None
    realm: str = ""


def parse_krb5_conf(text: str) -> Dict[str, Dict[str, Any]]:
    """Parses krb5.conf into {section: {key: value-or-subsection}}.

    Only the first value of a repeated key is kept, matching how the library resolves
    single-valued settings.
    """
    sections: Dict[str, Dict[str, Any]] = {}
    stack: List[Dict[str, Any]] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#;":
            continue
        match = _SECTION_RE.match(line)
        if match:
            stack = [sections.setdefault(match.group("name").strip(), {})]
            continue
        if not stack:
            continue
        if line.startswith("}"):
            if len(stack) > 1:
                stack.pop()
            continue
        match = _ASSIGN_RE.match(line)
        if not match:
            continue
        key, value = match.group("key"), match.group("value").strip()
        if value == "{":
            stack.append(stack[-1].setdefault(key, {}))
        else:
            # A trailing '*' marks the value final in krb5.conf; it carries no meaning here.
            stack[-1].setdefault(key, value.rstrip("*").strip())
    return sections


def load_krb5_conf(path: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    if path is None:
        path = os.environ.get("KRB5_CONFIG", DEFAULT_KRB5_CONFIG)
    # KRB5_CONFIG may name several files separated by colons; the first one found wins here.
    for candidate in path.split(":"):
        if candidate and os.path.exists(candidate):
            with open(candidate) as f:
                return parse_krb5_conf(f.read())
    log.debug("No krb5.conf found at %s", path)
    return {}


def appdefault_string(config: Dict[str, Dict[str, Any]], option: str) -> Optional[str]:
    """Looks up a wallet option in [appdefaults], either in a wallet = { } block or at the
    top level of the section. Empty strings count as unset."""
    appdefaults = config.get("appdefaults", {})
    value = None
    block = appdefaults.get("wallet")
    if isinstance(block, dict):
        value = block.get(option)
    if value is None:
        value = appdefaults.get(option)
    if isinstance(value, dict) or not value:
        return None
    return str(value)


def _port(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        port = int(value)
    except ValueError:
        return default
    if port <= 0 or port > 65535:
        return default
    return port


def default_options(
    config: Optional[Dict[str, Dict[str, Any]]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> WalletOptions:
    if config is None:
        config = load_krb5_conf()
    if environ is None:
        environ = dict(os.environ)

    options = WalletOptions()
    options.type = appdefault_string(config, "wallet_type") or DEFAULT_TYPE
    options.server = appdefault_string(config, "wallet_server")
    options.principal = appdefault_string(config, "wallet_principal")
    options.port = _port(appdefault_string(config, "wallet_port"), DEFAULT_PORT)
    realm = config.get("libdefaults", {}).get("default_realm")
    options.realm = realm if isinstance(realm, str) else ""

    options.type = environ.get("WALLET_TYPE") or options.type
    options.server = environ.get("WALLET_SERVER") or options.server
    options.principal = environ.get("WALLET_PRINCIPAL") or options.principal
    options.port = _port(environ.get("WALLET_PORT") or None, options.port)
    options.realm = environ.get("WALLET_REALM") or options.realm
    return options
