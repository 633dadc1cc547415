from dataclasses import dataclass
from pathlib import Path
from typing import List
import copy
import toml
import json

from token_receipt_printer.errors import ConfigError

DEFAULTS_FILE = Path(__file__).parent / 'defaults.toml'

PRINTER_TYPES = ('serial', 'tcp', 'file')
RECEIPT_MODES = ('korean', 'english')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def find_config_file():
    """Return the first existing config file, or None."""
    # Docker volume mount first, then user home, then current directory
    candidates = [
        Path('/app/config/config.toml'),
        Path.home() / '.token_receipt_printer' / 'config.toml',
        Path('config.toml'),
    ]
    for path in candidates:
        if path.exists():
            return path
    return None


def load_defaults() -> dict:
    return toml.load(DEFAULTS_FILE)


@dataclass
class Settings:
    base_url: str
    poll_interval_ms: int
    connect_timeout: float
    read_timeout: float

    printer_type: str
    serial_port: str
    baud_rate: int
    printer_host: str
    printer_port: int
    output_dir: str
    settle_seconds: float

    receipt_mode: str
    product_name: str
    timezone: str
    encodings: List[str]

    log_level: str
    log_file: str

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0


class ConfigManager:
    """Manages configuration loading and access."""

    def __init__(self, config_file: str = None):
        """
        Initialize ConfigManager.

        Args:
            config_file: Path to config file. If None, uses default locations.
        """
        if config_file is None:
            config_file = find_config_file()

        self.config_file = Path(config_file) if config_file else None
        self.config = {}
        if self.config_file:
            self.load_config()

    def exists(self):
        """Check if config file exists."""
        return bool(self.config_file and self.config_file.exists())

    def load_config(self):
        """Load configuration from file."""
        if not self.config_file or not self.config_file.exists():
            return

        try:
            if self.config_file.suffix == '.toml':
                self.config = toml.load(self.config_file)
            elif self.config_file.suffix == '.json':
                with open(self.config_file, 'r') as f:
                    self.config = json.load(f)
        except (toml.TomlDecodeError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot parse {self.config_file}: {e}")

    def save_config(self):
        """Save configuration to file."""
        if not self.config_file:
            raise ConfigError("No config file specified")

        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        if self.config_file.suffix == '.toml':
            with open(self.config_file, 'w') as f:
                toml.dump(self.config, f)
        elif self.config_file.suffix == '.json':
            with open(self.config_file, 'w') as f:
                json.dump(self.config, f, indent=4)

    def get(self, key: str, default=None):
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'server.base_url')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def set(self, key: str, value):
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'printer.serial_port')
            value: Value to set
        """
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value
        self.save_config()

    def merged(self) -> dict:
        """Packaged defaults overlaid with the loaded file, section by section."""
        merged = load_defaults()
        for section, values in self.config.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = copy.deepcopy(values)
        return merged

    def settings(self) -> Settings:
        """Validated, typed view of the merged configuration."""
        cfg = self.merged()
        server, printer = cfg['server'], cfg['printer']
        receipt, log = cfg['receipt'], cfg['logging']

        try:
            settings = Settings(
                base_url=str(server['base_url']).rstrip('/'),
                poll_interval_ms=int(server['poll_interval_ms']),
                connect_timeout=float(server['connect_timeout']),
                read_timeout=float(server['read_timeout']),
                printer_type=str(printer['type']).lower().strip(),
                serial_port=str(printer['serial_port']),
                baud_rate=int(printer['baud_rate']),
                printer_host=str(printer['host']),
                printer_port=int(printer['port']),
                output_dir=str(printer['output_dir']),
                settle_seconds=float(printer['settle_seconds']),
                receipt_mode=str(receipt['mode']).lower().strip(),
                product_name=str(receipt['product_name']),
                timezone=str(receipt['timezone']),
                encodings=[str(e) for e in receipt['encodings']],
                log_level=str(log['level']).upper(),
                log_file=str(log.get('file') or ''),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}")

        if not settings.base_url.startswith(('http://', 'https://')):
            raise ConfigError(f"server.base_url must be an http(s) URL, got {settings.base_url!r}")
        if settings.poll_interval_ms <= 0:
            raise ConfigError("server.poll_interval_ms must be positive")
        if settings.printer_type not in PRINTER_TYPES:
            raise ConfigError(f"printer.type must be one of {PRINTER_TYPES}")
        if settings.receipt_mode not in RECEIPT_MODES:
            raise ConfigError(f"receipt.mode must be one of {RECEIPT_MODES}")
        if settings.log_level not in LOG_LEVELS:
            raise ConfigError(f"logging.level must be one of {LOG_LEVELS}")
        if not settings.encodings:
            raise ConfigError("receipt.encodings must list at least one codec")
        return settings
