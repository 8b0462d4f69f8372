from omegaconf import DictConfig
from run_manager.common.serializable import YAMLSerializable


class Factory:
    """
    Factory class for creating a serializable object.
    """

    @staticmethod
    def create(name: str, config: DictConfig, *args, **kwargs):
        """
        Create an instance of a registered class.
        """
        class_ = YAMLSerializable.get_by_name(name)
        return class_.from_config(config, *args, **kwargs)
