from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping

from zbximport.core.base import TemplateBackend
from zbximport.core.errors import ImportConfigError, RemoteOperationError
from zbximport.core.models import GroupName, TemplateName, coerce_flag

# Required dependency: zabbix-utils
try:
    from zabbix_utils import APIRequestError, ProcessingError, ZabbixAPI  # type: ignore
except Exception as exc:  # pragma: no cover
    raise RuntimeError("zabbix-utils is required for the Zabbix backend. Install zabbix-utils.") from exc

log = logging.getLogger(__name__)

# Template groups were split from host groups in 6.2
_TEMPLATE_GROUP_API_VERSION = 6.2


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def connect(
    params: Mapping[str, Any],
    progress: Callable[[str], None] | None = None,
) -> "ZabbixBackend":
    """Open a Zabbix API session using token or username/password.

    Args:
        params: The ``zabbix`` configuration section
        progress: Optional step reporter

    Raises:
        ImportConfigError: URL or credentials are missing
        RemoteOperationError: Login failed
    """

    def report(task: str) -> None:
        if progress:
            progress(task)

    params = params or {}
    api_url = params.get("api_url")
    if not api_url:
        raise ImportConfigError("Missing Zabbix API url (zabbix.api_url)")

    token = params.get("api_token")
    username = params.get("username")
    password = params.get("password")

    if token:
        auth_kwargs: Dict[str, Any] = {"token": token}
    elif username and password:
        auth_kwargs = {"user": username, "password": password}
    else:
        raise ImportConfigError("Provide either zabbix.api_token or zabbix.username/zabbix.password")

    client_kwargs: Dict[str, Any] = {"url": api_url}
    if params.get("timeout") not in (None, ""):
        try:
            client_kwargs["timeout"] = int(params["timeout"])
        except (TypeError, ValueError) as err:
            raise ImportConfigError(f"zabbix.timeout must be a number of seconds, got {params['timeout']!r}") from err
    if "validate_certs" in params:
        client_kwargs["validate_certs"] = coerce_flag(params["validate_certs"], "zabbix.validate_certs")

    report(f"Connecting to Zabbix API at {api_url}")
    try:
        client = ZabbixAPI(**client_kwargs, **auth_kwargs)
    except (APIRequestError, ProcessingError) as err:
        raise RemoteOperationError("user.login", str(err), err) from err
    return ZabbixBackend(client, logout_on_close="user" in auth_kwargs)


class ZabbixBackend(TemplateBackend):
    """TemplateBackend talking JSON-RPC through a zabbix_utils client."""

    def __init__(self, client: Any, *, logout_on_close: bool = False) -> None:
        self.client = client
        self._logout_on_close = logout_on_close

    def _call(self, method: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        log.debug("Calling %s", method)
        try:
            return fn(*args, **kwargs)
        except (APIRequestError, ProcessingError) as err:
            raise RemoteOperationError(method, str(err), err) from err

    def _template_group_api(self) -> tuple[str, Any]:
        try:
            major = float(self.client.version.major)
        except (AttributeError, TypeError, ValueError):
            major = _TEMPLATE_GROUP_API_VERSION
        if major >= _TEMPLATE_GROUP_API_VERSION:
            return "templategroup.get", self.client.templategroup
        return "hostgroup.get", self.client.hostgroup

    def find_group_ids(self, names: Iterable[GroupName]) -> Dict[GroupName, str]:
        wanted = sorted(set(names))
        if not wanted:
            return {}
        method, api = self._template_group_api()
        records = self._call(method, api.get, output=["groupid", "name"], filter={"name": wanted})
        found: Dict[GroupName, str] = {}
        for record in records or []:
            if not isinstance(record, Mapping):
                continue
            name = _coerce_str(record.get("name"))
            if name:
                found[GroupName(name)] = _coerce_str(record.get("groupid"))
        return found

    def find_template_ids(self, names: Iterable[TemplateName]) -> Dict[TemplateName, str]:
        wanted = sorted(set(names))
        if not wanted:
            return {}
        records = self._call(
            "template.get",
            self.client.template.get,
            output=["templateid", "host"],
            filter={"host": wanted},
        )
        found: Dict[TemplateName, str] = {}
        for record in records or []:
            if not isinstance(record, Mapping):
                continue
            host = _coerce_str(record.get("host"))
            if host:
                found[TemplateName(host)] = _coerce_str(record.get("templateid"))
        return found

    def create_templates(self, batch: List[Dict[str, Any]]) -> List[str]:
        if not batch:
            return []
        response = self._call("template.create", self.client.template.create, *batch)
        if not isinstance(response, Mapping) or "templateids" not in response:
            raise RemoteOperationError("template.create", f"unexpected response {response!r}")
        return [_coerce_str(template_id) for template_id in response["templateids"]]

    def update_templates(self, batch: List[Dict[str, Any]]) -> None:
        if not batch:
            return
        self._call("template.update", self.client.template.update, *batch)

    def close(self) -> None:
        if not self._logout_on_close:
            return
        try:
            self.client.logout()
        except (APIRequestError, ProcessingError) as err:
            log.warning("Zabbix logout failed: %s", err)
        self._logout_on_close = False
