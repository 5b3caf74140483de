from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_server import BlockingOSCUDPServer

from rollcall.config_loader import get_feedback_cfg


def dump(addr, *args):
    print(f"{addr} {args}")


disp = Dispatcher()
disp.set_default_handler(dump)

# listen where feedback.osc_out sends
cfg = get_feedback_cfg()
host, port = cfg.get("host", "127.0.0.1"), int(cfg.get("port", 9000))
server = BlockingOSCUDPServer((host, port), disp)
print(f"listening on {host}:{port} ...")
server.serve_forever()
