# System utilities
"""Process inspection and termination utilities"""

import psutil
import logging
from typing import Dict, Any, List

logger = logging.getLogger(__name__)

def get_process_info(pid: int) -> Dict[str, Any]:
    """Get information about a specific process"""
    try:
        process = psutil.Process(pid)
        return {
            "pid": pid,
            "name": process.name(),
            "status": process.status(),
            "children": [child.pid for child in process.children(recursive=True)],
            "create_time": process.create_time(),
            "cmdline": process.cmdline(),
        }
    except psutil.NoSuchProcess:
        return {"error": f"Process {pid} not found"}
    except psutil.Error as e:
        return {"error": str(e)}

def kill_process_tree(pid: int, timeout: float = 5.0) -> List[int]:
    """Kill a process and all of its descendants, returning the killed pids

    The dev server launcher is a Python script that spawns a JVM, so killing
    only the direct child would leave the JVM holding the ports.
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        logger.debug(f"Process {pid} already gone")
        return []

    try:
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []

    victims = children + [parent]
    for process in victims:
        try:
            process.kill()
        except psutil.NoSuchProcess:
            pass

    gone, alive = psutil.wait_procs(victims, timeout=timeout)
    for process in alive:
        logger.warning(f"Process {process.pid} survived SIGKILL")

    killed = [process.pid for process in gone]
    logger.info(f"Killed process tree of {pid}: {killed}")
    return killed
