import sys
import threading
from authserver import AuthServer, ServerOption
from dispatcher import Dispatcher
from gameserver import GameServer
from objects import IdAllocator
from registry import ConnectionRegistry, RosterStore, TokenStore
from serverconfig import load_config_from_file
from zonesequencer import ZoneSequencer


# wires the shared services into one auth server and one game server
def build_servers(config):
    tokens = TokenStore()
    connections = ConnectionRegistry()
    ids = IdAllocator(log_ids=config.logging.log_ids)
    sequencer = ZoneSequencer(config.default_zone, config.zone_step_delay, config.logging)
    dispatcher = Dispatcher(ids, RosterStore(), tokens, sequencer, config.roster_seed_count)

    # List of servers to be broadcast by the auth server
    server_options = [ServerOption(config.server_id, config.game_server_ip, config.game_server_port,
                                   0, 0xFFFF, True)]

    auth_server = AuthServer(config.bind_address, config.login_server_port, server_options, tokens,
                             config.protocol_version)
    game_server = GameServer(config.bind_address, config.game_server_port, dispatcher, connections,
                             config.logging)
    return auth_server, game_server


if __name__ == "__main__":
    config_path = sys.argv[1] if len(sys.argv) > 1 else "server_config.json"
    server_config = load_config_from_file(config_path)
    auth, game = build_servers(server_config)

    threading.Thread(target=auth.listen).start()
    threading.Thread(target=game.listen).start()
