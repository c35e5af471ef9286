# ledgerhound/loaders/__init__.py
from importlib import import_module


def get_loader(name, config):
    try:
        loader_path = config['bank_loaders'][name]
    except KeyError:
        raise ValueError(f"Unknown loader '{name}'") from None
    module_name, cls_name = loader_path.rsplit('.', 1)
    mod = import_module(module_name)
    return getattr(mod, cls_name)()
