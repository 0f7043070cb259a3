# portplan/modules/config.py
import configparser
import os

CONF_ENV = "PORTPLAN_CONF"

DEFAULT_LOCATIONS = [
    "/etc/portplan/portplan.conf",
    os.path.expanduser("~/.config/portplan/portplan.conf"),
    os.path.join(os.getcwd(), "portplan.conf"),
]

DEFAULTS = {
    "portplan": {
        "recipes_dir": "/usr/ports",
        "installed_db": "/var/lib/portplan/installed_db.json",
        "buildtrees_dir": "/var/tmp/portplan/buildtrees",
        "default_triplet": "x64-linux",
    },
}


class PortplanConfig:
    def __init__(self, locations=None, required=False):
        if locations is None:
            # $PORTPLAN_CONF is searched before the standard locations
            env_conf = os.environ.get(CONF_ENV)
            locations = ([env_conf] if env_conf else []) + DEFAULT_LOCATIONS
        self.locations = locations
        self.required = required
        self.config = configparser.ConfigParser()
        self.loaded_from = None
        self.reload()

    def reload(self):
        """(Re)load the configuration from the first available file."""
        self.config = configparser.ConfigParser()
        self.config.read_dict(DEFAULTS)
        self.loaded_from = None
        for path in self.locations:
            if os.path.isfile(path):
                self.config.read(path)
                self.loaded_from = path
                return
        if self.required:
            raise FileNotFoundError(f"No configuration file found in: {self.locations}")

    def get(self, section, option, fallback=None):
        try:
            return self.config.get(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return fallback

    def getboolean(self, section, option, fallback=False):
        try:
            return self.config.getboolean(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getint(self, section, option, fallback=0):
        try:
            return self.config.getint(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getpath(self, section, option, fallback=None):
        """Like get(), with ~ and $VARS expanded; None stays None."""
        raw = self.get(section, option, fallback=fallback)
        if not raw:
            return raw
        return os.path.expandvars(os.path.expanduser(raw))

    def getlist(self, section, option, fallback=None, delimiter=","):
        raw = self.get(section, option, fallback="")
        if raw:
            return [item.strip() for item in raw.split(delimiter) if item.strip()]
        return fallback or []

    def __getitem__(self, section):
        if section in self.config:
            return dict(self.config[section])
        raise KeyError(f"Section '{section}' not found.")

    def __contains__(self, section):
        return section in self.config


# Default global instance used by the other modules
config = PortplanConfig()
