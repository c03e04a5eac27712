"""
审计记录导出器

导出器逐条写入文本流，每写一条检查一次取消事件。
"""

import csv
import json
import threading
from typing import Dict, Iterable, Optional, TextIO, Type

from ..errors import OperationCancelledError, ValidationError
from .models import AuditEntry


CSV_COLUMNS = [
    "sequence",
    "timestamp",
    "action",
    "key",
    "old_value",
    "new_value",
    "user_id",
    "source_ip",
    "user_agent",
    "version_id",
    "description",
]


def check_cancelled(cancel_event: Optional[threading.Event], operation: str):
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(f"{operation} cancelled", context={"operation": operation})


class AuditExporter:
    """导出器基类"""

    format = ""

    def write(self, entries: Iterable[AuditEntry], output: TextIO,
              cancel_event: Optional[threading.Event] = None) -> int:
        raise NotImplementedError


class JsonAuditExporter(AuditExporter):
    """JSON 数组格式"""

    format = "json"

    def write(self, entries, output, cancel_event=None) -> int:
        count = 0
        output.write("[")
        for entry in entries:
            check_cancelled(cancel_event, "audit export")
            if count:
                output.write(",")
            output.write("\n  ")
            output.write(json.dumps(entry.to_dict(), ensure_ascii=False))
            count += 1
        output.write("\n]\n" if count else "]\n")
        return count


class CsvAuditExporter(AuditExporter):
    """CSV 格式，首行为表头"""

    format = "csv"

    def write(self, entries, output, cancel_event=None) -> int:
        writer = csv.writer(output)
        writer.writerow(CSV_COLUMNS)
        count = 0
        for entry in entries:
            check_cancelled(cancel_event, "audit export")
            row = entry.to_dict()
            writer.writerow(["" if row[column] is None else row[column] for column in CSV_COLUMNS])
            count += 1
        return count


EXPORTERS: Dict[str, Type[AuditExporter]] = {
    JsonAuditExporter.format: JsonAuditExporter,
    CsvAuditExporter.format: CsvAuditExporter,
}


def get_exporter(format: str) -> AuditExporter:
    exporter_class = EXPORTERS.get((format or "").lower())
    if exporter_class is None:
        raise ValidationError(
            f"Unsupported export format: {format}. Supported: {', '.join(sorted(EXPORTERS))}"
        )
    return exporter_class()
