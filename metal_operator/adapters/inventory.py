"""Parse the host inventory CSV and register its rows as Hosts."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import TypedDict

import pydantic

from metal_operator.exceptions import ConflictError
from metal_operator.models.host import BMCConfiguration, Host, HostSpec
from metal_operator.models.meta import ObjectMeta, SecretReference
from metal_operator.store.base import ObjectStore

logger = logging.getLogger(__name__)

FIELD_MANAGER = "inventory"

# MAC address pattern: 6 pairs of hex digits separated by colons or dashes
_MAC_RE = re.compile(r"^([0-9a-fA-F]{2}[:\-]){5}[0-9a-fA-F]{2}$")
# Host names become object names
_NAME_RE = re.compile(r"^[a-z0-9]([a-z0-9.-]*[a-z0-9])?$")

_COLUMNS = 7


class HostRecord(TypedDict):
    name: str
    systemId: str
    bmcType: str
    bmcAddress: str
    secretName: str
    bootMAC: str
    systemUUID: str


def _normalize_mac(raw: str) -> str | None:
    """Normalize a MAC address to lowercase colon-separated form.

    Returns None if the MAC is invalid.
    """
    raw = raw.strip()
    if not _MAC_RE.match(raw):
        return None
    return raw.lower().replace("-", ":")


class InventoryAdapter:
    """Inventory rows: ``name;systemId;bmcType;bmcAddress;secretName;bootMAC;systemUUID``."""

    def __init__(self, csv_path: Path, store: ObjectStore, namespace: str = ""):
        self._path = csv_path
        self._store = store
        self._namespace = namespace
        self._records: dict[str, HostRecord] = {}
        self._last_modified: datetime | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def records(self) -> dict[str, HostRecord]:
        return self._records

    @property
    def last_modified(self) -> datetime | None:
        return self._last_modified

    def load(self) -> bool:
        """Load and parse the inventory. Returns True on success, False on failure."""
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("Inventory not found: %s", self._path)
            return False
        except OSError as exc:
            logger.error("Failed to read inventory: %s", exc)
            return False

        stat = self._path.stat()
        self._last_modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

        records: dict[str, HostRecord] = {}
        for line_no, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue

            fields = [f.strip() for f in line.split(";")]
            if len(fields) < 4:
                logger.debug("Skipping line %d: fewer than 4 columns", line_no)
                continue
            fields = fields[:_COLUMNS]
            while len(fields) < _COLUMNS:
                fields.append("")

            name, system_id, bmc_type, bmc_address, secret_name, raw_mac, system_uuid = fields

            if not _NAME_RE.match(name):
                logger.debug("Skipping line %d: invalid host name %r", line_no, name)
                continue
            if not system_id or not bmc_type or not bmc_address:
                logger.debug("Skipping line %d: systemId, bmcType and bmcAddress are required", line_no)
                continue

            mac = ""
            if raw_mac:
                mac = _normalize_mac(raw_mac)
                if mac is None:
                    logger.debug("Skipping line %d: invalid MAC %r", line_no, raw_mac)
                    continue

            if name in records:
                logger.debug("Line %d overrides earlier entry for %s", line_no, name)
            records[name] = HostRecord(
                name=name,
                systemId=system_id,
                bmcType=bmc_type,
                bmcAddress=bmc_address,
                secretName=secret_name,
                bootMAC=mac,
                systemUUID=system_uuid,
            )

        self._records = records
        logger.info("Loaded %d hosts from %s", len(records), self._path)
        return True

    def build_host(self, record: HostRecord) -> Host:
        """Host carrying only the fields the inventory owns."""
        secret_ref = None
        if record["secretName"]:
            secret_ref = SecretReference(name=record["secretName"], namespace=self._namespace)
        bmc = BMCConfiguration(type=record["bmcType"], address=record["bmcAddress"], secretRef=secret_ref)

        spec: dict = {"systemId": record["systemId"], "bmc": bmc}
        if record["bootMAC"]:
            spec["bootMACAddress"] = record["bootMAC"]
        if record["systemUUID"]:
            spec["systemUUID"] = record["systemUUID"]
        return Host(metadata=ObjectMeta(name=record["name"]), spec=HostSpec(**spec))

    async def sync(self) -> int:
        """Apply every loaded record. Returns the number of hosts applied."""
        applied = 0
        for record in self._records.values():
            try:
                host = self.build_host(record)
                await self._store.apply(host, FIELD_MANAGER)
            except (ConflictError, pydantic.ValidationError) as exc:
                logger.warning("Inventory host %s not applied: %s", record["name"], exc)
                continue
            applied += 1
        logger.info("Applied %d/%d inventory hosts", applied, len(self._records))
        return applied
