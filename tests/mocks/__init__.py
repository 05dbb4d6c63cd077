from .mock_platform import MockPlatform, seed_product

__all__ = ["MockPlatform", "seed_product"]
