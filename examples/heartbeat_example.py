#!/usr/bin/env python3

"""
Example of using DispatchTimer as a heartbeat that can be paused and muted.

The timer fires every 0.2s. Part way through, the heartbeat is muted for about
a second with ``tolerance``, then suspended, resumed twice in a row (the second
call is ignored), and finally closed.

Usage:
  python examples/heartbeat_example.py
"""

import logging
import time
from datetime import timedelta

from dispatchtimer import DispatchTimer

logging.basicConfig(level=logging.DEBUG)


def main() -> None:
    start = time.monotonic()

    def beat(timer: DispatchTimer) -> None:
        print(f"beat at {time.monotonic() - start:.2f}s")

    with DispatchTimer(timedelta(seconds=0.2), True, beat) as timer:
        timer.resume()
        time.sleep(0.7)

        print("muting for 1s")
        timer.tolerance = timedelta(seconds=1)
        time.sleep(1.5)

        print("suspending")
        timer.suspend()
        time.sleep(0.5)

        print("resuming twice")
        timer.resume()
        timer.resume()
        time.sleep(0.5)

    print(f"closed: {timer.closed}")


if __name__ == "__main__":
    main()
