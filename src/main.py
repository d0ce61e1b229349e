"""
main.py - Entry point for the Kouho IME engine
Kouho IMEエンジンのエントリーポイント

================================================================================
WHAT THIS FILE DOES / このファイルの役割
================================================================================

When Kouho is selected as the input method, the IBus daemon starts this
program, which registers the engine and then waits for key events.
Kouho を入力メソッドとして選択すると、IBus デーモンがこのプログラムを起動し、
エンジンを登録してキーイベントを待つ。

    ┌──────────────┐         ┌──────────┐         ┌─────────────────┐
    │   Keyboard   │ ──────► │   IBus   │ ──────► │  Applications   │
    │  キーボード   │         │  Daemon  │         │  アプリケーション │
    └──────────────┘         └────┬─────┘         └─────────────────┘
                                  │
                                  ▼
                         ┌─────────────────┐
                         │  Kouho Engine   │  ← registered here
                         │   (engine.py)   │    ここで登録
                         └─────────────────┘

================================================================================
FILE RELATIONSHIPS / ファイルの関係
================================================================================

    main.py (THIS FILE)          ← Entry point, IBus registration
        │
        └──► engine.py           ← IBus engine, presents the window
                  │
                  ├──► input_router.py      (event routing)
                  ├──► composition.py       (window layout, touch)
                  ├──► dictionary_engine.py (candidates)
                  └──► util.py              (configuration, themes)
================================================================================
"""

from engine import EngineKouho
import util

import getopt
import os
import logging
import sys
from shutil import copyfile

import gi
gi.require_version('Gtk', '3.0')
from gi.repository import GLib, GObject, IBus, Gtk


class IMApp:
    """
    IBus Application Wrapper - Manages the connection between Kouho and IBus.
    IBusアプリケーションラッパー - KouhoとIBus間の接続を管理。

    exec_by_ibus=True (Normal Operation):
        IBus daemon starts us, so we just request our D-Bus name.
        IBusデーモンが起動するので、D-Bus名を要求するだけ。

    exec_by_ibus=False (Standalone/Development):
        We register an IBus.Component ourselves and make it the global
        engine. Useful for testing without restarting the IBus daemon.
        自分で IBus.Component を登録する。IBus を再起動せずに試せる。
    """

    def __init__(self, exec_by_ibus: bool) -> None:
        if not isinstance(exec_by_ibus, bool):
            raise TypeError("The `exec_by_ibus` parameter must be a boolean value.")
        self.exec_by_ibus = exec_by_ibus
        Gtk.init(None)
        self._mainloop = GLib.MainLoop()
        self._bus = IBus.Bus()
        self._bus.connect("disconnected", self._bus_disconnected_cb)
        self._factory = IBus.Factory(self._bus)
        self._factory.add_engine("kouho", GObject.type_from_name(EngineKouho.__gtype_name__))
        if exec_by_ibus:
            self._bus.request_name("org.freedesktop.IBus.Kouho", 0)
        else:
            self._component = IBus.Component(
                name="org.freedesktop.IBus.Kouho",
                description="Kouho",
                version=util.get_version(),
                license="MIT",
                textdomain=util.get_package_name())
            engine = IBus.EngineDesc(
                name="kouho",
                longname="Kouho",
                description="Kouho candidate window input method",
                language="ja",
                license="MIT",
                icon=util.get_package_name(),
                layout="default")
            self._component.add_engine(engine)
            self._bus.register_component(self._component)
            self._bus.set_global_engine_async("kouho", -1, None, None, None)

    def run(self):
        self._mainloop.run()

    def _bus_disconnected_cb(self, bus=None):
        self._mainloop.quit()


def print_help(v: int = 0) -> None:
    print("-i, --ibus             executed by IBus.")
    print("-h, --help             show this message.")
    print("-d, --daemonize        daemonize ibus")
    sys.exit(v)


def main():
    """
    Main entry point - Initialize environment and start the Kouho engine.
    メインエントリーポイント - 環境を初期化し、Kouhoエンジンを起動。

        1. umask 077, create ~/.config/ibus-kouho/
        2. copy the default config.json if the user has none
        3. log to ~/.config/ibus-kouho/ibus-kouho.log
        4. parse --ibus / --daemonize / --help, then run IMApp
    """
    os.umask(0o077)

    user_configdir = util.get_user_config_dir()
    os.makedirs(user_configdir, 0o700, True)
    os.chmod(user_configdir, 0o700)

    configfile_name = os.path.join(user_configdir, 'config.json')
    if not os.path.exists(configfile_name):
        copyfile(util.get_default_config_path(), configfile_name)

    # the level is lowered/raised by the engine from config.json's logging_level
    logfile_name = os.path.join(user_configdir, util.get_package_name() + '.log')
    logging.basicConfig(filename=logfile_name, level=logging.WARNING,
                        format='%(asctime)s %(levelname)-8s %(name)s %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
    logger = logging.getLogger()
    logger.info(f'main.py user_configdir: {user_configdir}')
    logger.info(f'main.py util.get_datadir(): {util.get_datadir()}')

    exec_by_ibus = False
    daemonize = False
    shortopt = "ihd"
    longopt = ["ibus", "help", "daemonize"]
    try:
        opts, args = getopt.getopt(sys.argv[1:], shortopt, longopt)
    except getopt.GetoptError as err:
        logger.error(err)
        sys.exit(1)

    for o, a in opts:
        if o in ("-h", "--help"):
            print_help(0)
        elif o in ("-d", "--daemonize"):
            daemonize = True
        elif o in ("-i", "--ibus"):
            exec_by_ibus = True
        else:
            sys.stderr.write("Unknown argument: %s\n" % o)
            print_help(1)

    logger.info(f'daemonize? : {daemonize}')
    logger.info(f'IBus exec? : {exec_by_ibus}')

    if daemonize:
        if os.fork():
            sys.exit()

    IMApp(exec_by_ibus).run()


if __name__ == "__main__":
    main()
