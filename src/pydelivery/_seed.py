"""Representative sample packages for an empty local store."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydelivery.models.package import Package


def sample_packages(now: datetime) -> list[Package]:
    """Four packages spread across the lifecycle, timestamps relative to *now*."""
    hours = lambda n: timedelta(hours=n)  # noqa: E731
    raw = [
        {
            "id": "PKG001",
            "trackingNumber": "DLV-2024-001",
            "recipientName": "Juan Pérez Rodriguez",
            "recipientPhone": "+52 33 1234 5678",
            "recipientEmail": "juan.perez@email.com",
            "address": {
                "street": "Av. Chapultepec Norte 123",
                "city": "Guadalajara",
                "postalCode": "44100",
                "formatted": "Av. Chapultepec Norte 123, Zona Centro, Guadalajara, Jalisco 44100",
            },
            "coordinates": {"latitude": 20.6597, "longitude": -103.3496},
            "status": "PENDING",
            "priority": "HIGH",
            "estimatedDelivery": now + hours(2),
            "deliveryInstructions": "Leave at the building reception. Ask for ID.",
            "tags": ["fragile", "signature-required", "high-value"],
            "attempts": 0,
            "createdAt": now - hours(24),
        },
        {
            "id": "PKG002",
            "trackingNumber": "DLV-2024-002",
            "recipientName": "María González Vega",
            "recipientPhone": "+52 33 2345 6789",
            "recipientEmail": "maria.gonzalez@email.com",
            "address": {
                "street": "Av. Vallarta 456",
                "city": "Guadalajara",
                "postalCode": "44160",
                "formatted": "Av. Vallarta 456, Col. Americana, Guadalajara, Jalisco 44160",
            },
            "coordinates": {"latitude": 20.6765, "longitude": -103.3467},
            "status": "IN_TRANSIT",
            "priority": "MEDIUM",
            "estimatedDelivery": now + hours(4),
            "deliveryInstructions": "Ring apartment 3B",
            "tags": ["standard-delivery"],
            "attempts": 1,
            "createdAt": now - hours(12),
        },
        {
            "id": "PKG003",
            "trackingNumber": "DLV-2024-003",
            "recipientName": "Carlos López Mendoza",
            "recipientPhone": "+52 33 3456 7890",
            "address": {
                "street": "Av. México 789",
                "city": "Guadalajara",
                "postalCode": "44670",
                "formatted": "Av. México 789, Col. Monraz, Guadalajara, Jalisco 44670",
            },
            "coordinates": {"latitude": 20.6434, "longitude": -103.3524},
            "status": "OUT_FOR_DELIVERY",
            "priority": "URGENT",
            "estimatedDelivery": now + hours(1),
            "deliveryInstructions": "Hand over only to the recipient with official ID",
            "tags": ["urgent", "legal-documents", "id-verification"],
            "attempts": 0,
            "createdAt": now - hours(6),
        },
        {
            "id": "PKG004",
            "trackingNumber": "DLV-2024-004",
            "recipientName": "Ana Martínez Silva",
            "recipientPhone": "+52 33 4567 8901",
            "address": {
                "street": "Calle Independencia 321",
                "city": "Guadalajara",
                "postalCode": "44100",
                "formatted": "Calle Independencia 321, Col. Centro, Guadalajara, Jalisco 44100",
            },
            "coordinates": {"latitude": 20.6736, "longitude": -103.3370},
            "status": "DELIVERED",
            "priority": "LOW",
            "estimatedDelivery": now - hours(2),
            "deliveredAt": now - timedelta(minutes=30),
            "tags": ["cosmetics"],
            "attempts": 1,
            "createdAt": now - hours(8),
        },
    ]
    return [Package.model_validate(item) for item in raw]
