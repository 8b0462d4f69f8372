from omegaconf import OmegaConf, DictConfig
from typing import Type, Dict


class YAMLSerializable:
    """
    Base class for components that are built from YAML configuration.

    Subclasses register under a name (the ``type`` key of their config
    section) so storage backends, listeners and authorizers can be chosen
    from the engine config without importing them explicitly.
    """
    _registry: Dict[str, Type] = {}

    def __init__(self, config: DictConfig = None):
        self.config = config

    @classmethod
    def register(cls, name: str):
        def decorator(class_: Type):
            if name in cls._registry and cls._registry[name] is not class_:
                raise ValueError(f"'{name}' is already registered to {cls._registry[name].__name__}")
            cls._registry[name] = class_
            return class_
        return decorator

    @classmethod
    def get_by_name(cls, name: str) -> Type:
        if name not in cls._registry:
            raise ValueError(f"'{name}' is not registered.")
        return cls._registry[name]

    def save(self, file_path) -> None:
        if self.config is not None:
            OmegaConf.save(self.config, file_path)

    @classmethod
    def load(cls, file_path):
        """Build an instance from a YAML file."""
        return cls.from_config(OmegaConf.load(file_path))

    @classmethod
    def from_config(cls, config: DictConfig):
        return cls(config)
