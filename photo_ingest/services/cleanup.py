from dataclasses import dataclass, field
from ..errors import ObjectNotFoundError
from ..utils.logging import logger


@dataclass
class CleanupReport:
    deleted: list = field(default_factory=list)
    failed: dict = field(default_factory=dict)

    @property
    def ok(self):
        return not self.failed


def delete_one(store, key):
    """Delete ``key``; a key that is already gone counts as deleted."""
    try:
        store.delete(key)
    except ObjectNotFoundError:
        logger.info(f"Object {key} already absent, nothing to delete")
        return True
    logger.info(f"Deleted object {key}")
    return True


def delete_many(store, keys):
    """Best-effort delete of every key. Failures are collected, never raised."""
    report = CleanupReport()
    for key in keys:
        try:
            delete_one(store, key)
            report.deleted.append(key)
        except Exception as e:
            report.failed[key] = str(e)

    if report.failed:
        errors = ", ".join(f"{k}: {v}" for k, v in report.failed.items())
        logger.error(f"Object cleanup left {len(report.failed)} orphan(s): {errors}")
    return report
