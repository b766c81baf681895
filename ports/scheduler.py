from abc import ABC, abstractmethod

class SchedulerPort(ABC):
    @abstractmethod
    def tick(self) -> bool:
        """Uma verificação do agendador; True se o relatório foi gerado."""

    @abstractmethod
    def start(self):
        """Inicia o loop do agendador (bloqueante)"""
        pass
