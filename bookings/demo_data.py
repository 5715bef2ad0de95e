"""
Sample rows for demo deployments.

Only ``db.safe_query`` reads these, and only when ``settings.DEMO_MODE`` is on.
"""
import copy

DATASETS = {
    'ships': [
        {'id': 1, 'name': 'MSC World Europa'},
        {'id': 2, 'name': 'Costa Smeralda'},
    ],
    'locations': [
        {'id': 1, 'name': 'Doha Port'},
        {'id': 2, 'name': 'Souq Waqif'},
    ],
    'agents': [
        {'id': 1, 'name': 'Direct Booking'},
    ],
    'booking_agents': [
        {'id': 1, 'name': 'Ahmed Al-Thani'},
    ],
    'tours': [
        {
            'id': 1, 'name': 'Doha City Tour', 'price': '85.00', 'capacity': 40,
            'status': 'active', 'ship_name': 'MSC World Europa', 'location_name': 'Doha Port',
            'description': 'Corniche, Souq Waqif and the Pearl in half a day.',
        },
        {
            'id': 2, 'name': 'Desert Safari', 'price': '120.00', 'capacity': 24,
            'status': 'active', 'ship_name': 'Costa Smeralda', 'location_name': 'Doha Port',
            'description': 'Dune bashing and the Inland Sea.',
        },
        {
            'id': 3, 'name': 'Museum of Islamic Art Tour', 'price': '60.00', 'capacity': 30,
            'status': 'active', 'ship_name': 'MSC World Europa', 'location_name': 'Souq Waqif',
            'description': 'Guided visit of the Museum of Islamic Art.',
        },
    ],
    'bookings': [
        {
            'id': 1, 'booking_reference': 'REF-250524-9597', 'status': 'confirmed',
            'customer_name': 'Demo Customer', 'customer_email': 'demo@example.com',
            'tour_name': 'Doha City Tour', 'tour_date': '2025-05-24',
            'total_payment': '170.00', 'deposit': '170.00', 'remaining_balance': '0.00',
            'adults': 2, 'children': 0, 'total_pax': 2, 'tour_count': 1,
        },
    ],
}


def get_dataset(name):
    """Return a private copy of the named dataset, or an empty list."""
    return copy.deepcopy(DATASETS.get(name, []))
