from .container import AppContainer, get_container, reset_container

__all__ = ["AppContainer", "get_container", "reset_container"]
