from .commands import (
    RobotCommandExecutor,
    RobotCommander,
    RobotLink,
    RobotNotConnectedError,
    normalize_clean_rooms,
    send_command,
)

__all__ = [
    "RobotCommandExecutor",
    "RobotCommander",
    "RobotLink",
    "RobotNotConnectedError",
    "normalize_clean_rooms",
    "send_command",
]
