"""bluetoothctl control-plane client and bluetooth service control."""

from .ctl import BluetoothCtl
from .service import BluetoothService

__all__ = ["BluetoothCtl", "BluetoothService"]
