from functools import lru_cache

from stampwallet.services.pass_generator import create_pass_generator
from stampwallet.services.registry import DeviceUpdateRegistry
from stampwallet.services.strip_generator import StampImageGenerator, create_stamp_image_generator


@lru_cache
def get_stamp_generator() -> StampImageGenerator:
    return create_stamp_image_generator()


@lru_cache
def get_registry() -> DeviceUpdateRegistry:
    return DeviceUpdateRegistry(pass_generator=create_pass_generator())
