"""
Pipeline orchestrator for block detection runs.

A run assigns parcels to blocks (from address records or from geometry),
persists blocks, their parcels and an analytics snapshot per block, and
records the run in the store. A failing block is logged and counted; a
failing run is marked failed and the error re-raised.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from shapely.errors import GEOSException
from shapely.geometry import Point, mapping
from tqdm import tqdm

from .analytics import compute_analytics
from .blocks import (
    AssignmentAccumulator,
    AssignmentOptions,
    AssignmentSummary,
    BlockValidator,
    ValidationReport,
    assign_blocks,
    split_block_id,
)
from .config_manager import BlockConfig
from .geometry import DetectionResult, GeometricBlockDetector, ParcelFeature, StreetFeature, StreetSegment
from .geometry.corridor import assign_parcels_to_blocks
from .ingest.geodata_client import GeodataAPIError, GeodataClient, esri_geometry
from .models import BlockRecord, ParcelRecord, RunStatus
from .storage import BlockStore

logger = logging.getLogger(__name__)

RECORD_ONLY_KEYS = ("parsed", "block_id", "block_method", "parse_error")


@dataclass
class PipelineResult:
    """Result of one pipeline run."""
    run_id: Optional[int]
    run_type: str
    status: RunStatus
    parcels_processed: int = 0
    blocks_processed: int = 0
    errors_count: int = 0
    unassigned_parcels: int = 0
    total_time_ms: int = 0
    summary: Optional[AssignmentSummary] = None
    validation: Optional[ValidationReport] = None
    errors: List[Dict[str, str]] = field(default_factory=list)
    detection: Optional[DetectionResult] = None
    unique_parcels: int = 0
    block_sales: Dict[str, int] = field(default_factory=dict)

    def top_blocks(self, n: int = 10) -> List[Tuple[str, int]]:
        """Blocks with the most sale rows, busiest first."""
        return top_blocks(self.block_sales, n)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "run_id": self.run_id,
            "run_type": self.run_type,
            "status": self.status.value,
            "parcels_processed": self.parcels_processed,
            "blocks_processed": self.blocks_processed,
            "errors_count": self.errors_count,
            "unassigned_parcels": self.unassigned_parcels,
            "total_time_ms": self.total_time_ms,
            "summary": self.summary.to_dict() if self.summary else None,
            "validation": self.validation.to_dict() if self.validation else None,
            "errors": self.errors,
            "unique_parcels": self.unique_parcels,
            "unique_blocks": len(self.block_sales),
            "top_blocks": [
                {"block_id": block_id, "sales_count": count}
                for block_id, count in self.top_blocks()
            ],
        }


def top_blocks(sales_counts: Dict[str, int], n: int = 10) -> List[Tuple[str, int]]:
    """Top ``n`` blocks by sale count; ties keep block id order."""
    return sorted(sales_counts.items(), key=lambda item: (-item[1], item[0]))[:n]


class BlockPipeline:
    """Runs block assignment/detection and persists the results."""

    def __init__(self, store: BlockStore, config: BlockConfig):
        """Initialize pipeline.

        Args:
            store: Block store instance
            config: Validated configuration
        """
        self.store = store
        self.config = config
        self.options = AssignmentOptions.from_config(config.assignment)
        self.validator = BlockValidator.from_config(config.validation)
        self.detector = GeometricBlockDetector.from_config(config.geometry)

    # ------------------------------------------------------------------
    # Address-based runs
    # ------------------------------------------------------------------

    def run_address_assignment(
        self,
        chunks: Iterable[List[Dict[str, Any]]],
        run_type: str = "sales_import",
        as_of: Optional[datetime] = None,
    ) -> PipelineResult:
        """Assign parcel records to address blocks and persist them.

        Args:
            chunks: Iterable of parcel record lists (e.g. ParcelLoader.iter_chunks)
            run_type: Run type stored with the run record
            as_of: Reference time for analytics (default: now)

        Returns:
            PipelineResult
        """
        start_time = time.time()
        run = self.store.start_run(run_type, metadata={
            "strategy": self.options.strategy.value,
            "block_size": self.options.block_size,
            "gap_threshold": self.options.gap_threshold,
        })
        logger.info(f"Started run {run.run_id} ({run_type}, {self.options.strategy.value})")

        accumulator = AssignmentAccumulator()
        # Unique parcels per block (latest row wins) and every sale row per block
        block_parcels: Dict[str, Dict[str, Dict[str, Any]]] = {}
        block_sales: Dict[str, List[Dict[str, Any]]] = {}

        try:
            for chunk in tqdm(chunks, desc="Assigning chunks", unit="chunk"):
                result = assign_blocks(chunk, self.options)
                accumulator.merge(result)

                for record in result.assigned:
                    block_id = record.get("block_id")
                    if not block_id:
                        continue
                    key = str(record.get("parcel_id") or record.get("address"))
                    block_parcels.setdefault(block_id, {})[key] = record
                    block_sales.setdefault(block_id, []).append(record)

                self.store.update_run(run.run_id, parcels_processed=accumulator.total_parcels)

            summary = accumulator.summary()
            unique_parcels = sum(len(parcels) for parcels in block_parcels.values())
            logger.info(
                f"Assigned {summary.successfully_assigned}/{summary.total_parcels} parcels "
                f"to {summary.unique_blocks} blocks ({summary.parse_errors} parse errors)"
            )

            errors = []
            blocks_processed = 0
            for block_id, parcels in tqdm(block_parcels.items(), desc="Saving blocks", unit="block"):
                try:
                    self._persist_address_block(
                        block_id, list(parcels.values()), block_sales[block_id], as_of
                    )
                    blocks_processed += 1
                except Exception as e:
                    logger.error(f"Error processing block {block_id}: {e}")
                    errors.append({"block_id": block_id, "error": str(e)})

            report = self.validator.validate_stats(accumulator.block_stats)
            self._log_validation(report)

            sales_counts = {block_id: len(rows) for block_id, rows in block_sales.items()}
            leaders = top_blocks(sales_counts)
            logger.info(f"Unique parcels: {unique_parcels}, unique blocks: {len(block_parcels)}")
            for rank, (block_id, count) in enumerate(leaders, start=1):
                logger.debug(f"  {rank}. {block_id}: {count} sales")

            self.store.complete_run(
                run.run_id,
                parcels_processed=summary.total_parcels,
                blocks_processed=blocks_processed,
                errors_count=len(errors),
                error_details={"errors": errors} if errors else None,
                metadata={
                    "strategy": self.options.strategy.value,
                    "block_size": self.options.block_size,
                    "gap_threshold": self.options.gap_threshold,
                    "total_sales_records": summary.total_parcels,
                    "unique_parcels": unique_parcels,
                    "unique_blocks": len(block_parcels),
                    "top_blocks": [
                        {"block_id": block_id, "sales_count": count} for block_id, count in leaders
                    ],
                },
            )
        except Exception as e:
            logger.error(f"Run {run.run_id} failed: {e}")
            self.store.fail_run(run.run_id, str(e), parcels_processed=accumulator.total_parcels)
            raise

        return PipelineResult(
            run_id=run.run_id,
            run_type=run_type,
            status=RunStatus.COMPLETED,
            parcels_processed=summary.total_parcels,
            blocks_processed=blocks_processed,
            errors_count=len(errors),
            total_time_ms=int((time.time() - start_time) * 1000),
            summary=summary,
            validation=report,
            errors=errors,
            unique_parcels=unique_parcels,
            block_sales=sales_counts,
        )

    def _persist_address_block(
        self,
        block_id: str,
        records: List[Dict[str, Any]],
        sales: List[Dict[str, Any]],
        as_of: Optional[datetime],
    ) -> None:
        street, start, end = split_block_id(block_id)
        self.store.upsert_block(BlockRecord(
            block_id=block_id,
            street_name=street,
            from_cross_street=str(start),
            to_cross_street=str(end),
        ))

        parcels = []
        for record in records:
            if not record.get("parcel_id"):
                continue
            lat, lng = record.get("lat"), record.get("lng")
            parcels.append(ParcelRecord(
                block_id=block_id,
                parcel_id=str(record["parcel_id"]),
                address=record.get("address"),
                property_data={
                    key: value for key, value in record.items()
                    if key not in RECORD_ONLY_KEYS and value is not None
                },
                geometry=mapping(Point(lng, lat)) if lat is not None and lng is not None else None,
            ))
        self.store.upsert_parcels(parcels)

        self.store.upsert_analytics(
            compute_analytics(records, as_of=as_of, block_id=block_id, sales=sales)
        )

    # ------------------------------------------------------------------
    # Geometric runs
    # ------------------------------------------------------------------

    def run_geometric(
        self,
        streets: Sequence[StreetFeature],
        cross_streets: Sequence[StreetFeature],
        parcels: Optional[Sequence[ParcelFeature]] = None,
        run_type: str = "geometric",
        as_of: Optional[datetime] = None,
    ) -> PipelineResult:
        """Detect blocks from in-memory street/parcel features and persist them.

        Args:
            streets: Streets to segment (source CRS)
            cross_streets: Candidate cross streets (source CRS)
            parcels: Parcels to join to block corridors (source CRS)
            run_type: Run type stored with the run record
            as_of: Reference time for analytics (default: now)

        Returns:
            PipelineResult
        """
        start_time = time.time()
        parcels = list(parcels or [])
        run = self.store.start_run(run_type, metadata={
            "streets": len(streets),
            "cross_streets": len(cross_streets),
            "buffer_distance_m": self.detector.buffer_distance_m,
        })

        errors = []
        blocks_processed = 0
        try:
            detection = self.detector.detect_blocks(streets, cross_streets, parcels)

            for segment in tqdm(detection.blocks, desc="Saving blocks", unit="block"):
                try:
                    self._persist_geometric_block(
                        segment, detection.block_parcels.get(segment.block_id, []), as_of
                    )
                    blocks_processed += 1
                except Exception as e:
                    logger.error(f"Error processing block {segment.block_id}: {e}")
                    errors.append({"block_id": segment.block_id, "error": str(e)})

            self.store.complete_run(
                run.run_id,
                parcels_processed=len(parcels),
                blocks_processed=blocks_processed,
                errors_count=len(errors),
                error_details={"errors": errors} if errors else None,
                metadata={"unassigned_parcels": len(detection.unassigned_parcels)},
            )
        except Exception as e:
            logger.error(f"Run {run.run_id} failed: {e}")
            self.store.fail_run(run.run_id, str(e))
            raise

        return PipelineResult(
            run_id=run.run_id,
            run_type=run_type,
            status=RunStatus.COMPLETED,
            parcels_processed=len(parcels),
            blocks_processed=blocks_processed,
            errors_count=len(errors),
            unassigned_parcels=len(detection.unassigned_parcels),
            total_time_ms=int((time.time() - start_time) * 1000),
            errors=errors,
            detection=detection,
        )

    def run_remote(
        self,
        client: GeodataClient,
        where: str = "1=1",
        run_type: str = "incremental",
        as_of: Optional[datetime] = None,
    ) -> PipelineResult:
        """Walk streets from the geodata API and detect/persist their blocks.

        Cross streets and parcels are fetched per street and per block
        corridor. API failures for one street are counted and skipped.

        Args:
            client: Geodata API client
            where: Street filter (ArcGIS where clause)
            run_type: Run type stored with the run record
            as_of: Reference time for analytics (default: now)

        Returns:
            PipelineResult
        """
        start_time = time.time()
        run = self.store.start_run(run_type, metadata={"where": where})
        projector = self.detector.projector

        errors = []
        streets_processed = 0
        parcels_processed = 0
        blocks_processed = 0
        try:
            progress = tqdm(desc="Streets", unit="street")
            for page in client.iter_streets(where):
                for feature in page:
                    street = StreetFeature.from_geojson(feature)
                    streets_processed += 1
                    progress.update(1)
                    try:
                        cross_features = client.fetch_intersecting_streets(
                            esri_geometry(street.geometry), street.street_id
                        )
                        cross_streets = [StreetFeature.from_geojson(f) for f in cross_features]
                        segments = self.detector.segment(
                            street.transformed(projector.to_metric),
                            self.detector.project_streets(cross_streets),
                        )
                    except (GeodataAPIError, GEOSException, ValueError) as e:
                        logger.error(f"Error processing street {street.street_name}: {e}")
                        errors.append({"street": street.street_name, "error": str(e)})
                        continue

                    for segment in segments:
                        try:
                            members = self._fetch_block_parcels(client, segment)
                            parcels_processed += len(members)
                            self._persist_geometric_block(segment, members, as_of)
                            blocks_processed += 1
                        except Exception as e:
                            logger.error(f"Error processing block {segment.block_id}: {e}")
                            errors.append({"block_id": segment.block_id, "error": str(e)})

                self.store.update_run(
                    run.run_id,
                    parcels_processed=parcels_processed,
                    blocks_processed=blocks_processed,
                    errors_count=len(errors),
                )
            progress.close()

            self.store.complete_run(
                run.run_id,
                parcels_processed=parcels_processed,
                blocks_processed=blocks_processed,
                errors_count=len(errors),
                error_details={"errors": errors} if errors else None,
                metadata={"where": where, "streets_processed": streets_processed},
            )
        except Exception as e:
            logger.error(f"Run {run.run_id} failed: {e}")
            self.store.fail_run(run.run_id, str(e))
            raise

        return PipelineResult(
            run_id=run.run_id,
            run_type=run_type,
            status=RunStatus.COMPLETED,
            parcels_processed=parcels_processed,
            blocks_processed=blocks_processed,
            errors_count=len(errors),
            total_time_ms=int((time.time() - start_time) * 1000),
            errors=errors,
        )

    def _fetch_block_parcels(self, client: GeodataClient, segment: StreetSegment) -> List[ParcelFeature]:
        """Fetch parcels near a metric segment and keep those inside its corridor."""
        corridor = self.detector.corridor(segment)
        if corridor is None:
            return []

        projector = self.detector.projector
        features = client.fetch_parcels_in_area(esri_geometry(projector.to_source(corridor)))
        parcels = self.detector.project_parcels([ParcelFeature.from_geojson(f) for f in features])
        joined = assign_parcels_to_blocks(parcels, [segment], self.detector.buffer_distance_m)
        return joined[segment.block_id]

    def _persist_geometric_block(
        self,
        segment: StreetSegment,
        parcels: Sequence[ParcelFeature],
        as_of: Optional[datetime],
    ) -> None:
        """Save one metric segment with its (metric) parcels in the source CRS."""
        projector = self.detector.projector
        corridor = self.detector.corridor(segment)

        self.store.upsert_block(BlockRecord(
            block_id=segment.block_id,
            street_name=segment.street_name,
            from_cross_street=segment.from_cross_street,
            to_cross_street=segment.to_cross_street,
            block_bounds=mapping(projector.to_source(corridor)) if corridor is not None else None,
            center_point=mapping(projector.to_source(segment.center)),
        ))

        self.store.upsert_parcels([
            ParcelRecord(
                block_id=segment.block_id,
                parcel_id=str(parcel.parcel_id),
                address=parcel.address,
                property_data=parcel.properties,
                geometry=mapping(projector.to_source(parcel.geometry)),
            )
            for parcel in parcels
            if parcel.parcel_id is not None
        ])

        self.store.upsert_analytics(compute_analytics(parcels, as_of=as_of, block_id=segment.block_id))

    def _log_validation(self, report: ValidationReport) -> None:
        if not report.issues:
            logger.info("Validation passed: no issues found")
            return

        warnings = report.by_severity("warning")
        logger.warning(
            f"Validation found {len(report.issues)} issues "
            f"({len(warnings)} warnings)"
        )
        for issue in report.issues:
            logger.debug(f"  [{issue.severity}] {issue.type}: {issue.message}")
