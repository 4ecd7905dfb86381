from typing import Any


# envelope every JSON action answers with: {"success", "message", "data"}
def ok(data: Any = None, message: str = "") -> dict:
    return {"success": True, "message": message, "data": data}


def fail(message: str) -> dict:
    return {"success": False, "message": message, "data": None}
