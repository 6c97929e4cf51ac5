# barbershop/deps.py

from datetime import datetime

from fastapi import HTTPException


def require_role(user: dict, *roles: str):
    if user["role"] not in roles:
        raise HTTPException(status_code=403, detail="Forbidden")


# Dependency: the request's notion of "now" (naive local time)
def get_now() -> datetime:
    return datetime.now()
