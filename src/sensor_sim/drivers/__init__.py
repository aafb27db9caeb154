from .audio_pcm import AudioSource, DecoderError, PcmDecoder, audio_driver
from .contracts import DriverMeta, driver, get_driver_meta
from .csv_lines import CsvLineSource, DecodeError, LineDecoder, csv_driver
from .registry import DriverRegistry, DriverRegistryError, build_default_registry, discover_drivers

__all__ = [
    "AudioSource",
    "CsvLineSource",
    "DecodeError",
    "DecoderError",
    "DriverMeta",
    "DriverRegistry",
    "DriverRegistryError",
    "LineDecoder",
    "PcmDecoder",
    "audio_driver",
    "build_default_registry",
    "csv_driver",
    "discover_drivers",
    "driver",
    "get_driver_meta",
]
