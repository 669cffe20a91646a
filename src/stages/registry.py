"""Stage registry: funnel stage -> handler"""

from typing import Dict, Type, Optional
from loguru import logger

from src.funnel.models import FunnelStage
from .base import BaseStage
from .personal_info import PersonalInfoStage
from .vehicle import (
    VehicleLookupStage,
    VinEntryStage,
    VehicleDetailsStage,
    VehicleUsageStage,
    VehicleListStage,
)
from .driver import DriverInfoStage, DriverListStage
from .policy import PolicyInfoStage, CoverageOptionsStage, PropertyInfoStage
from .results import QuoteResultsStage, ContactMethodStage, AlsoInterestedStage, ThankYouStage


class StageRegistry:
    """Registry for stage handler implementations"""

    def __init__(self):
        """Initialize stage registry"""
        self.handlers: Dict[FunnelStage, Type[BaseStage]] = {}
        self.handler_instances: Dict[FunnelStage, BaseStage] = {}
        self._register_defaults()
        logger.debug("Stage registry initialized")

    def _register_defaults(self):
        """Register default stage handlers"""
        for handler_class in (
            PersonalInfoStage,
            VehicleLookupStage,
            VinEntryStage,
            VehicleDetailsStage,
            VehicleUsageStage,
            VehicleListStage,
            DriverInfoStage,
            DriverListStage,
            PolicyInfoStage,
            CoverageOptionsStage,
            PropertyInfoStage,
            QuoteResultsStage,
            ContactMethodStage,
            AlsoInterestedStage,
            ThankYouStage,
        ):
            self.register(handler_class.stage, handler_class)

    def register(self, stage: FunnelStage, handler_class: Type[BaseStage]):
        """
        Register a stage handler

        Args:
            stage: Funnel stage it handles
            handler_class: Handler class implementation
        """
        self.handlers[stage] = handler_class
        self.handler_instances.pop(stage, None)
        logger.debug(f"Registered handler for stage: {stage.value}")

    def get_handler(self, stage: FunnelStage) -> Optional[BaseStage]:
        """
        Get handler instance

        Args:
            stage: Funnel stage

        Returns:
            Handler instance or None
        """
        if stage not in self.handlers:
            logger.warning(f"No handler registered for stage {stage.value}")
            return None

        if stage not in self.handler_instances:
            self.handler_instances[stage] = self.handlers[stage]()

        return self.handler_instances[stage]
