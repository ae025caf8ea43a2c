"""Schema v1 - Initial trade schema.

This version includes tables for:
- Coins (the catalog view the trade core reads ownership and trade status from)
- Trades and their offers
- Per-trade shipping state
- Dispute reports
"""

ACTIVE_TRADE_STATUSES = "('pending', 'countered', 'accepted')"

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'coins',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False, 'default': "''"},
                {'name': 'trade_status', 'type': 'TEXT', 'nullable': False, 'default': "'not_for_trade'"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                {'name': 'chk_coins_trade_status', 'expression': "trade_status IN ('not_for_trade', 'open_to_trade')"}
            ],
            'indexes': [
                {'name': 'idx_coins_user', 'columns': ['user_id']},
                {'name': 'idx_coins_trade_status', 'columns': ['trade_status']}
            ]
        },
        {
            'name': 'trades',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'item_id', 'type': 'UUID', 'nullable': False},
                {'name': 'initiator_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'item_owner_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                {'name': 'chk_trades_participants', 'expression': 'initiator_id <> item_owner_id'},
                {
                    'name': 'chk_trades_status',
                    'expression': "status IN ('pending', 'countered', 'accepted', 'completed', 'cancelled', 'disputed')"
                }
            ],
            'foreign_keys': [
                {'columns': ['item_id'], 'references': 'coins(id)'}
            ],
            'indexes': [
                {'name': 'idx_trades_initiator', 'columns': ['initiator_id']},
                {'name': 'idx_trades_owner', 'columns': ['item_owner_id']},
                {'name': 'idx_trades_status', 'columns': ['status']},
                # One active trade per (initiator, item)
                {
                    'name': 'idx_trades_active_pair',
                    'columns': ['initiator_id', 'item_id'],
                    'unique': True,
                    'where': f'status IN {ACTIVE_TRADE_STATUSES}'
                }
            ]
        },
        {
            'name': 'trade_offers',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'trade_id', 'type': 'UUID', 'nullable': False},
                {'name': 'offerer_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'offered_item_id', 'type': 'UUID'},
                {'name': 'message', 'type': 'TEXT'},
                {'name': 'is_counter_offer', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                {'name': 'chk_trade_offers_status', 'expression': "status IN ('pending', 'accepted', 'rejected')"}
            ],
            'foreign_keys': [
                {'columns': ['trade_id'], 'references': 'trades(id)'}
            ],
            'indexes': [
                {'name': 'idx_trade_offers_trade', 'columns': ['trade_id']},
                # At most one accepted offer per trade
                {
                    'name': 'idx_trade_offers_accepted',
                    'columns': ['trade_id'],
                    'unique': True,
                    'where': "status = 'accepted'"
                }
            ]
        },
        {
            'name': 'trade_shipping',
            'columns': [
                {'name': 'trade_id', 'type': 'UUID', 'primary_key': True},
                {'name': 'initiator_shipped', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'initiator_shipped_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'initiator_tracking_number', 'type': 'TEXT'},
                {'name': 'initiator_received', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'initiator_received_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'owner_shipped', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'owner_shipped_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'owner_tracking_number', 'type': 'TEXT'},
                {'name': 'owner_received', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'owner_received_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['trade_id'], 'references': 'trades(id)'}
            ]
        },
        {
            'name': 'trade_reports',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'trade_id', 'type': 'UUID', 'nullable': False},
                {'name': 'reporter_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'reported_user_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'reason', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'open'"},
                {'name': 'reviewed_by', 'type': 'TEXT'},
                {'name': 'review_notes', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                {'name': 'chk_trade_reports_parties', 'expression': 'reporter_id <> reported_user_id'},
                {'name': 'chk_trade_reports_status', 'expression': "status IN ('open', 'closed')"}
            ],
            'foreign_keys': [
                {'columns': ['trade_id'], 'references': 'trades(id)'}
            ],
            'indexes': [
                {'name': 'idx_trade_reports_trade', 'columns': ['trade_id']},
                {'name': 'idx_trade_reports_status', 'columns': ['status']}
            ]
        }
    ],
    'migrations': []
}
