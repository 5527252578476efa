"""
Module for the ThreadBase Class
"""

# Standard
import threading

# First Party
import alog

log = alog.use_channel("TRDUTLS")


class ThreadBase(threading.Thread):
    """Base class for the operator's long running threads. This class handles
    generic starting and stopping"""

    def __init__(self, name: str = None, daemon: bool = None):
        self.shutdown = threading.Event()
        super().__init__(name=name, daemon=daemon)

    ## Abstract Interface ######################################################

    def run(self):
        """Control loop for the thread. Once this function exits the thread stops"""
        raise NotImplementedError()

    ## Base Class Interface ####################################################

    def start_thread(self):
        """If the thread is not already alive start it"""
        if not self.is_alive():
            log.info("Starting %s: %s", self.__class__.__name__, self.name)
            self.start()

    def stop_thread(self):
        """Set the shutdown event"""
        log.info("Stopping %s: %s", self.__class__.__name__, self.name)
        self.shutdown.set()

    def should_stop(self) -> bool:
        """Helper to determine if a thread should shutdown"""
        return self.shutdown.is_set()

    def wait_on_shutdown(self, timeout: float) -> bool:
        """Wait for the given time, returning early on shutdown. Returns True
        if the thread should keep running.
        """
        return not self.shutdown.wait(timeout)
