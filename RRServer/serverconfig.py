import json
import os


class LoggingOptions:
    log_frames = False
    log_hashes = False
    log_gc_object_serialise = False
    log_ids = False

    def __init__(self, log_frames=False, log_hashes=False, log_gc_object_serialise=False, log_ids=False):
        self.log_frames = log_frames
        self.log_hashes = log_hashes
        self.log_gc_object_serialise = log_gc_object_serialise
        self.log_ids = log_ids


class ServerConfig:
    bind_address = "0.0.0.0"
    login_server_port = 2110
    game_server_port = 2603
    game_server_ip = "127.0.0.1"
    server_id = 0
    protocol_version = 666
    default_zone = "Town"
    zone_step_delay = 0.05
    roster_seed_count = 2

    def __init__(self, **overrides):
        self.logging = LoggingOptions()
        for key, value in overrides.items():
            if key == "logging":
                self.logging = LoggingOptions(**value)
            elif hasattr(ServerConfig, key):
                setattr(self, key, value)
            else:
                raise ValueError("Unknown config key: " + key)


# a missing file runs the server on the defaults
def load_config_from_file(path="server_config.json"):
    if not os.path.exists(path):
        print("Config", path, "not found, using defaults")
        return ServerConfig()
    with open(path) as config_text:
        config_data = json.load(config_text)
    return ServerConfig(**config_data)
