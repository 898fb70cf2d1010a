"""Backends that template imports are applied to."""

__all__ = [
	"memory",
	"zabbix_base",
]
