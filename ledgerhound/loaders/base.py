# ledgerhound/loaders/base.py
from abc import ABC, abstractmethod


class BaseLoader(ABC):
    @abstractmethod
    def load(self, data: bytes, filename: str = None):
        """
        Decode and tokenize a raw export, returning a LoadedFile whose
        header has already been mapped to logical columns.
        """
        pass
