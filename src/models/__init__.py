from .estate import (
    Asset,
    AssetType,
    DataQualityFlag,
    EstateSnapshot,
    FinancialProfile,
    Gender,
    Gift,
    GiftKind,
    IHTProfile,
    LifeTableRow,
    MaritalStatus,
    Ownership,
    Person,
    Trust,
    TrustType,
)

__all__ = [
    'Asset',
    'AssetType',
    'DataQualityFlag',
    'EstateSnapshot',
    'FinancialProfile',
    'Gender',
    'Gift',
    'GiftKind',
    'IHTProfile',
    'LifeTableRow',
    'MaritalStatus',
    'Ownership',
    'Person',
    'Trust',
    'TrustType',
]
