from omegaconf import DictConfig
from run_manager.common.factory import Factory
from run_manager.common.serializable import YAMLSerializable

from run_manager.listeners.listener import RunListener

# import the listener classes so they register themselves
from run_manager.listeners.plugins.log_listener import LogListener
from run_manager.listeners.plugins.queue_listener import QueueListener


class ListenerFactory(Factory):

    @staticmethod
    def create(name: str, config: DictConfig, workspace: str) -> RunListener:
        return YAMLSerializable.get_by_name(name).from_config(config, workspace)
