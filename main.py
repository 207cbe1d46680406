#!/usr/bin/env python3
"""
Main Pipeline Orchestrator
===========================
Runs a PeopleSoft trace through the analysis pipeline from the command line.

Pipeline stages:
1. Trace Processing - Detect the layout and build statements and the execution path
2. Reporting - Log summary statistics and WHERE/FROM hotspots, write a JSON summary
3. Graph Export (optional) - Load statements and calls into Neo4j

Author: PeopleSoft Trace Analyzer Project
Date: October 19, 2026
"""

import sys
import logging
import argparse
import json
import queue
from pathlib import Path
from datetime import datetime
from typing import Optional

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from graph_builder import TraceGraphBuilder
from trace_config import TraceConfig, load_config
from trace_data import TraceData
from trace_processor import TraceWorker, for_file


class PipelineOrchestrator:
    """Orchestrates processing, reporting and export for one trace file."""

    def __init__(self, trace_file: Path, output_dir: Path, config: TraceConfig):
        """
        Initialize pipeline orchestrator.

        Args:
            trace_file: Trace file to analyse
            output_dir: Directory for output files
            config: Runtime configuration
        """
        self.trace_file = Path(trace_file)
        self.output_dir = Path(output_dir)
        self.config = config
        self.trace_data: Optional[TraceData] = None
        self.pipeline_stats = {
            'start_time': None,
            'end_time': None,
            'stages': {}
        }

        self.output_dir.mkdir(parents=True, exist_ok=True)

        logging.info("=" * 70)
        logging.info("Pipeline Orchestrator Initialized")
        logging.info("=" * 70)
        logging.info(f"Trace file: {self.trace_file}")
        logging.info(f"Output directory: {self.output_dir}")

    def run(self, export_graph: bool = False) -> bool:
        """
        Execute the pipeline.

        Returns:
            True if the trace was processed, False if processing was cancelled
        """
        self.pipeline_stats['start_time'] = datetime.now()

        if not self._stage_process_trace():
            return False

        self._stage_report()

        if export_graph:
            self._stage_build_graph()

        self._finalize_pipeline()
        return True

    def _stage_process_trace(self) -> bool:
        """Stage 1: Process the trace on a background worker."""
        logging.info("\n" + "=" * 70)
        logging.info("STAGE 1: TRACE PROCESSING")
        logging.info("=" * 70)

        stage_start = datetime.now()
        worker = TraceWorker(for_file(self.trace_file, self.config))
        worker.start()

        outcome = None
        try:
            while outcome is None:
                try:
                    event = worker.events.get(timeout=0.5)
                except queue.Empty:
                    continue
                if event.kind == TraceWorker.PROGRESS:
                    if event.payload % 10 == 0:
                        logging.info(f"  {event.payload}% complete")
                else:
                    outcome = event
        except KeyboardInterrupt:
            worker.cancel()
            worker.join()
            raise
        worker.join()

        if outcome.kind == TraceWorker.CANCELLED:
            logging.warning("Trace processing was cancelled")
            return False
        if outcome.kind == TraceWorker.FAILED:
            message, tb = outcome.payload
            logging.debug(tb)
            raise RuntimeError(f"Trace processing failed: {message}")

        self.trace_data = outcome.payload
        stage_duration = (datetime.now() - stage_start).total_seconds()
        self.pipeline_stats['stages']['process'] = {
            'duration_seconds': stage_duration,
            **self.trace_data.summary()
        }
        logging.info(f"\nStage completed in {stage_duration:.2f} seconds")
        return True

    def _stage_report(self):
        """Stage 2: Log statistics and write the JSON summary."""
        logging.info("\n" + "=" * 70)
        logging.info("STAGE 2: REPORTING")
        logging.info("=" * 70)

        data = self.trace_data
        logging.info("\nStatistics:")
        for item in data.statistics:
            logging.info(f"  {item.label}: {item.value}")

        logging.info("\nTop WHERE clauses by total time:")
        for group in sorted(data.sql_by_where, key=lambda g: g.total_time, reverse=True)[:10]:
            flag = " [ERROR]" if group.has_error else ""
            logging.info(f"  {group.total_time:10.4f}s  {group.number_of_calls:6d} calls  "
                         f"{group.where_clause[:80]}{flag}")

        logging.info("\nTop FROM clauses by total time:")
        for group in sorted(data.sql_by_from, key=lambda g: g.total_time, reverse=True)[:10]:
            flag = " [ERROR]" if group.has_error else ""
            logging.info(f"  {group.total_time:10.4f}s  {group.number_of_calls:6d} calls  "
                         f"{group.from_clause[:80]}{flag}")

        summary_file = self.output_dir / f"{self.trace_file.stem}_analysis.json"
        with open(summary_file, 'w') as f:
            json.dump(data.to_dict(), f, indent=2)
        logging.info(f"\nAnalysis saved to: {summary_file}")

    def _stage_build_graph(self):
        """Stage 3: Load the result into Neo4j."""
        logging.info("\n" + "=" * 70)
        logging.info("STAGE 3: GRAPH EXPORT")
        logging.info("=" * 70)

        stage_start = datetime.now()
        builder = TraceGraphBuilder(
            uri=self.config.neo4j_uri,
            user=self.config.neo4j_user,
            password=self.config.neo4j_password
        )

        if not builder.connect():
            raise ConnectionError("Failed to connect to Neo4j database")

        try:
            if self.config.clear_graph:
                builder.clear_database()
            builder.create_constraints_and_indexes()
            builder.build_graph(self.trace_data)
            builder.save_statistics(self.output_dir)
        finally:
            builder.close()

        stage_duration = (datetime.now() - stage_start).total_seconds()
        self.pipeline_stats['stages']['graph'] = {
            'duration_seconds': stage_duration,
            'nodes_created': builder.stats.nodes_created,
            'relationships_created': builder.stats.relationships_created
        }
        logging.info(f"\nStage completed in {stage_duration:.2f} seconds")

    def _finalize_pipeline(self):
        """Log the stage breakdown."""
        self.pipeline_stats['end_time'] = datetime.now()
        total_duration = (self.pipeline_stats['end_time'] -
                          self.pipeline_stats['start_time']).total_seconds()

        logging.info("\n" + "=" * 70)
        logging.info("PIPELINE COMPLETE")
        logging.info("=" * 70)
        logging.info(f"\nTotal execution time: {total_duration:.2f} seconds")
        for stage, stats in self.pipeline_stats['stages'].items():
            duration = stats['duration_seconds']
            percentage = (duration / total_duration * 100) if total_duration > 0 else 0
            logging.info(f"  {stage.upper()}: {duration:.2f}s ({percentage:.1f}%)")


def setup_logging(verbose: bool = False, log_file: Optional[str] = None):
    """Setup logging configuration."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w'))

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
        force=True
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='PeopleSoft Trace Analyzer - SQL and execution path analysis',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyse an Application Engine trace
  python3 main.py traces/AE_PSPMAGG_1234.aet

  # Analyse a COBOL timing trace and load it into Neo4j
  python3 main.py traces/PSPMTRAN.trc --neo4j --neo4j-password mypassword

  # Enable verbose logging
  python3 main.py traces/session.tracesql --verbose
        """
    )

    parser.add_argument(
        'trace',
        type=Path,
        help='Trace file (.aet, .tracesql or .trc)'
    )

    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='JSON configuration file (default: trace_analyzer.json if present)'
    )

    parser.add_argument(
        '--output',
        type=Path,
        default=Path('outputs'),
        help='Output directory for analysis files (default: outputs)'
    )

    parser.add_argument(
        '--neo4j',
        action='store_true',
        help='Export statements and execution path to Neo4j'
    )

    parser.add_argument('--neo4j-uri', default=None, help='Neo4j connection URI')
    parser.add_argument('--neo4j-user', default=None, help='Neo4j username')
    parser.add_argument('--neo4j-password', default=None, help='Neo4j password')

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    if args.neo4j_uri:
        config.neo4j_uri = args.neo4j_uri
    if args.neo4j_user:
        config.neo4j_user = args.neo4j_user
    if args.neo4j_password:
        config.neo4j_password = args.neo4j_password

    setup_logging(args.verbose, config.log_file)

    if not args.trace.exists():
        logging.error(f"Trace file not found: {args.trace}")
        return 1

    try:
        orchestrator = PipelineOrchestrator(
            trace_file=args.trace,
            output_dir=args.output,
            config=config
        )
        if not orchestrator.run(export_graph=args.neo4j):
            return 1

        logging.info("\nPipeline execution successful!")
        return 0

    except KeyboardInterrupt:
        logging.warning("\nPipeline interrupted by user")
        return 1
    except Exception as e:
        logging.error(f"\nPipeline failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
