"""
Price Feed Bot - Threshold-Triggered On-Chain Price Updates

This module provides the update-decision-and-submission engine:
- PriceSample / PublishedPrice: Fixed-point price values
- ThresholdPolicy: Significance test against the on-chain price
- FeeEscalation: Bounded retry policy with fee bumps and fallback fee
- UpdateCoordinator: Single-flight update state machine
- Web3ChainClient: web3.py implementation of the ChainClient interface
- PriceFeedBot: Runner wiring a feed to the coordinator
- feeds: Streaming and polling price feed implementations
"""

from .ChainClient import ChainClient, Receipt, TransactionHandle
from .FeeEscalation import (
    DynamicFee,
    FeeBid,
    FeeEscalationStrategy,
    LegacyFee,
    RetryDecision,
    SubmissionAttempt,
)
from .PeriodicTimer import PeriodicTimer
from .PriceFeedBot import PriceFeedBot
from .PriceSample import PriceSample, PublishedPrice
from .ThresholdPolicy import ThresholdConfig, is_significant, threshold_value
from .TradingPair import TradingPair
from .TransactionErrors import ChainError, FailureKind, TransactionFailure, classify_error
from .UpdateCoordinator import (
    CoordinatorState,
    CycleReport,
    Decision,
    SessionState,
    UpdateCoordinator,
)
from .Web3ChainClient import Web3ChainClient

__all__ = [
    "ChainClient",
    "ChainError",
    "CoordinatorState",
    "CycleReport",
    "Decision",
    "DynamicFee",
    "FailureKind",
    "FeeBid",
    "FeeEscalationStrategy",
    "LegacyFee",
    "PeriodicTimer",
    "PriceFeedBot",
    "PriceSample",
    "PublishedPrice",
    "Receipt",
    "RetryDecision",
    "SessionState",
    "SubmissionAttempt",
    "ThresholdConfig",
    "TradingPair",
    "TransactionFailure",
    "TransactionHandle",
    "UpdateCoordinator",
    "Web3ChainClient",
    "classify_error",
    "is_significant",
    "threshold_value",
]
