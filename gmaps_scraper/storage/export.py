import csv
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from gmaps_scraper.data_models.models import BusinessRecord, ExtractionResult

# Column order of the tabular export
CSV_COLUMNS = ['Name', 'Category', 'Phone', 'Website', 'Address', 'Rating', 'Reviews']


class ExportMetadata(dict):
    """Export metadata for tracking and validation"""

    def __init__(self, export_type: str, total_records: int, query: Optional[str] = None):
        super().__init__()
        self.update({
            "export_type": export_type,
            "export_timestamp": datetime.now().isoformat(),
            "total_records": total_records,
            "query": query,
            "schema_version": "1.0",
            "generated_by": "gmaps_scraper_v1.0"
        })


def default_filename(query: str, export_format: str) -> str:
    """gmaps_<slug>_<timestamp>.<ext>, derived from the search query"""
    slug = re.sub(r'[^a-z0-9]+', '_', query.lower()).strip('_')
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    return f"gmaps_{slug[:50] or 'results'}_{timestamp}.{export_format}"


class JSONExporter:
    """JSON export of records, run stats and metadata"""

    def export_result(self,
                      result: ExtractionResult,
                      output_path: str,
                      include_metadata: bool = True) -> str:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        export_data: Dict[str, Any] = {
            "query": result.query,
            "results": [record.model_dump(mode='json', by_alias=True) for record in result.records],
            "stats": result.stats.model_dump(mode='json', by_alias=True),
        }
        if include_metadata:
            export_data["metadata"] = ExportMetadata(
                export_type="json",
                total_records=len(result.records),
                query=result.query
            )

        with open(output_file, 'w', encoding='utf-8') as f:
            json.dump(export_data, f, indent=2, ensure_ascii=False, default=str)

        logger.info(f"Exported {len(result.records)} businesses to JSON: {output_file}")
        return str(output_file)


class CSVExporter:
    """CSV export with fixed columns and Excel compatibility"""

    def __init__(self, excel_compatible: bool = True):
        self.excel_compatible = excel_compatible

    def export_records(self, records: List[BusinessRecord], output_path: str) -> str:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        if not records:
            logger.warning("No businesses to export, writing header only")

        with open(output_file, 'w', newline='', encoding='utf-8-sig' if self.excel_compatible else 'utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS, extrasaction='ignore')
            writer.writeheader()
            for record in records:
                writer.writerow(record.to_flat_row())

        logger.info(f"Exported {len(records)} businesses to CSV: {output_file}")
        return str(output_file)


def export_result(result: ExtractionResult, output_path: str, export_format: str = "json") -> str:
    """Write a result in the requested format"""
    if export_format.lower() == "json":
        return JSONExporter().export_result(result, output_path)
    elif export_format.lower() == "csv":
        return CSVExporter().export_records(result.records, output_path)
    else:
        raise ValueError(f"Unsupported export format: {export_format}")
