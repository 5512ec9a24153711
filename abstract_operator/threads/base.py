"""
Common start and stop handling of the library's background threads
"""

# Standard
from typing import Optional
import threading

# First Party
import alog

log = alog.use_channel("THRDS")


class ThreadBase(threading.Thread):
    """A thread that runs until its shutdown event is set. Subclasses
    implement run() and poll should_stop() or sleep with wait_on_shutdown().
    """

    def __init__(self, name: Optional[str] = None, daemon: Optional[bool] = None):
        """
        Args:
            name:  Optional[str]
                Name of the thread, shown in thread aware logs
            daemon:  Optional[bool]
                Whether the interpreter may exit while the thread runs
        """
        super().__init__(name=name, daemon=daemon)
        self.shutdown = threading.Event()

    def run(self):
        raise NotImplementedError()

    def start_thread(self):
        """Start the thread unless it is already running"""
        if self.is_alive():
            return
        log.debug("Starting thread %s", self.name)
        self.start()

    def stop_thread(self):
        """Ask the thread to stop. Returns without waiting for it."""
        log.debug("Stopping thread %s", self.name)
        self.shutdown.set()

    def should_stop(self) -> bool:
        return self.shutdown.is_set()

    def wait_on_shutdown(self, timeout: float) -> bool:
        """Sleep for up to timeout seconds, waking early on shutdown

        Returns:
            keep_running:  bool
                False if the thread was asked to stop while waiting
        """
        return not self.shutdown.wait(timeout)
