import logging
from collections import defaultdict
from typing import Dict, List

from boto3.dynamodb.conditions import Attr

from ..exceptions import ConcurrencyConflictError, EntityNotFoundError
from ..models import Event, MaintenanceReport, VersionGap
from .event_store import AGGREGATE_ID, VERSION, EventStore

logger = logging.getLogger(__name__)


class EventStoreMaintainer:
    """Maintenance operations on the current namespace's event table.

    ``run_maintenance`` is the periodic hook and only reads. ``replace`` and
    ``rename_event`` rewrite stored events and are meant for operators
    migrating event data.
    """

    def __init__(self, store: EventStore):
        self.store = store

    def run_maintenance(self) -> MaintenanceReport:
        """Check every stream of the namespace for version gaps.

        Idempotent and read-only, so it can run next to ongoing saves and
        loads. Streams written through ``EventStore.save`` never have gaps; any
        found are logged and reported.
        """
        gateway = self.store._gateway()
        report = MaintenanceReport(namespace=gateway.namespace, table_name=gateway.table_name)
        if not gateway.table_exists():
            logger.warning(f"Maintenance skipped: table {gateway.table_name} does not exist")
            return report
        report.table_exists = True

        versions: Dict[str, List[int]] = defaultdict(list)
        for item in gateway.scan_items(consistent_read=True, projection=[AGGREGATE_ID, VERSION]):
            versions[item[AGGREGATE_ID]].append(int(item[VERSION]))

        for aggregate_id, stream in sorted(versions.items()):
            expected = 1
            for version in sorted(stream):
                if version != expected:
                    logger.warning(
                        f"Version gap in {gateway.table_name} for {aggregate_id}: "
                        f"expected {expected}, found {version}"
                    )
                    report.gaps.append(
                        VersionGap(aggregate_id=aggregate_id, expected_version=expected, found_version=version)
                    )
                expected = version + 1
            report.events_checked += len(stream)
        report.aggregates_checked = len(versions)

        logger.info(
            f"Maintenance of {gateway.table_name}: {report.aggregates_checked} aggregates, "
            f"{report.events_checked} events, {len(report.gaps)} gaps"
        )
        return report

    def replace(self, event: Event) -> None:
        """Overwrite a stored event, matched by aggregate and version.

        Raises:
            EntityNotFoundError: If that version was never stored
        """
        gateway = self.store._gateway()
        try:
            gateway.put_item(
                self.store._event_to_item(event),
                condition_expression=Attr(AGGREGATE_ID).exists(),
                resource_id=event.aggregate_id,
            )
        except ConcurrencyConflictError as e:
            key = {AGGREGATE_ID: event.aggregate_id, VERSION: event.version}
            raise EntityNotFoundError(gateway.table_name, key, gateway.namespace, e) from e
        logger.info(f"Replaced event {event} of {event.aggregate_id} in {gateway.table_name}")

    def rename_event(self, from_type: str, to_type: str) -> int:
        """Rename every event of type ``from_type`` to ``to_type``.

        Each update only applies while the event still has ``from_type``, so
        running it again, or concurrently, renames nothing twice.

        Returns:
            Number of events renamed by this call
        """
        gateway = self.store._gateway()
        renamed = 0
        matches = gateway.scan_items(
            consistent_read=True,
            filter_expression="event_type = ?",
            filter_args=[from_type],
            projection=[AGGREGATE_ID, VERSION],
        )
        for item in list(matches):
            try:
                gateway.update_item(
                    key={AGGREGATE_ID: item[AGGREGATE_ID], VERSION: item[VERSION]},
                    update_expression='SET #type = :to',
                    expression_attribute_names={'#type': 'event_type'},
                    expression_attribute_values={':to': to_type, ':from': from_type},
                    condition_expression='#type = :from',
                )
            except ConcurrencyConflictError:
                logger.info(f"Event {item[AGGREGATE_ID]}@{item[VERSION]} changed type concurrently, skipped")
                continue
            renamed += 1

        logger.info(f"Renamed {renamed} events from {from_type} to {to_type} in {gateway.table_name}")
        return renamed
