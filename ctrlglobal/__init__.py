from ctrlglobal.ctrl_global import SUCCESS, CtrlGlobal
from ctrlglobal.ctrl_group_pos import CtrlGroupPos
from ctrlglobal.infra.db.connection import Connection

__version__ = "0.1.0"

__all__ = ["Connection", "CtrlGlobal", "CtrlGroupPos", "SUCCESS", "__version__"]
