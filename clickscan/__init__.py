"""
clickscan — find the QR codes and barcodes under a click and dispatch their payloads.

Public API:
    - DetectionPipeline: wires one click to region resolution, decoding,
      spatial filtering, policy selection and dispatch, one cycle at a time.
    - DetectionTrigger: one user click.
    - ConfigProvider / load_config: layered configuration.
    - RasterSource, OpenCVDecoder, Dispatcher: default collaborators.

Usage:
    from clickscan import ConfigProvider, DetectionPipeline, DetectionTrigger

    async with DetectionPipeline(config, source, decoder, dispatcher) as pipeline:
        outcome = await pipeline.submit(trigger).wait()
"""

from clickscan.config import ConfigProvider, load_config
from clickscan.decoder import OpenCVDecoder
from clickscan.detection import DetectedBarcode, DetectionTrigger, Raster
from clickscan.dispatch import Dispatcher
from clickscan.pipeline import DetectionPipeline
from clickscan.raster_source import RasterSource

__all__ = [
    "ConfigProvider",
    "DetectedBarcode",
    "DetectionPipeline",
    "DetectionTrigger",
    "Dispatcher",
    "OpenCVDecoder",
    "Raster",
    "RasterSource",
    "load_config",
]
