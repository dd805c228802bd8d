"""Schema v1 - Initial database schema.

This version includes tables for:
- Users and their wallet balance
- Listings (only the owner is used by the chat core)
- Buyer/seller conversations and their messages
- Wallet transactions and gateway order references
- Notifications
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'email', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'full_name', 'type': 'TEXT'},
                {'name': 'phone', 'type': 'TEXT'},
                {'name': 'role', 'type': 'TEXT', 'nullable': False, 'default': "'BUYER'"},
                {'name': 'balance', 'type': 'DECIMAL(18, 2)', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': ["role IN ('BUYER', 'SELLER', 'ADMIN')"]
        },
        {
            'name': 'listings',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['seller_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_listings_seller', 'columns': ['seller_id']}
            ]
        },
        {
            'name': 'conversations',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'buyer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'listing_id', 'type': 'UUID'},
                {'name': 'last_message', 'type': 'TEXT'},
                {'name': 'last_message_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'unread_count_buyer', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'unread_count_seller', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': ['buyer_id <> seller_id'],
            'foreign_keys': [
                {'columns': ['buyer_id'], 'references': 'users(id)'},
                {'columns': ['seller_id'], 'references': 'users(id)'},
                {'columns': ['listing_id'], 'references': 'listings(id)'}
            ],
            'indexes': [
                # One conversation per unordered participant pair
                {
                    'name': 'idx_conversations_pair',
                    'columns': ['LEAST(buyer_id, seller_id)', 'GREATEST(buyer_id, seller_id)'],
                    'unique': True
                },
                {'name': 'idx_conversations_buyer', 'columns': ['buyer_id']},
                {'name': 'idx_conversations_seller', 'columns': ['seller_id']}
            ]
        },
        {
            'name': 'chat_messages',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'conversation_id', 'type': 'UUID', 'nullable': False},
                {'name': 'sender_id', 'type': 'UUID', 'nullable': False},
                {'name': 'message', 'type': 'TEXT', 'nullable': False},
                {'name': 'is_read', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['conversation_id'], 'references': 'conversations(id)'},
                {'columns': ['sender_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_chat_messages_conversation', 'columns': ['conversation_id', 'created_at']},
                {
                    'name': 'idx_chat_messages_unread',
                    'columns': ['conversation_id', 'sender_id'],
                    'where': 'NOT is_read'
                }
            ]
        },
        {
            'name': 'wallet_transactions',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'amount', 'type': 'DECIMAL(18, 2)', 'nullable': False},
                {'name': 'type', 'type': 'TEXT', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'PENDING'"},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'reference_id', 'type': 'TEXT'},
                {'name': 'listing_id', 'type': 'UUID'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                "type IN ('DEPOSIT', 'WITHDRAW', 'COMMISSION', 'PREMIUM_UPGRADE', 'ADMIN_ADD', 'ADMIN_DEDUCT')",
                "status IN ('PENDING', 'COMPLETED', 'FAILED', 'CANCELLED')"
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'},
                {'columns': ['listing_id'], 'references': 'listings(id)'}
            ],
            'indexes': [
                {
                    'name': 'idx_wallet_transactions_reference',
                    'columns': ['reference_id'],
                    'unique': True,
                    'where': 'reference_id IS NOT NULL'
                },
                {'name': 'idx_wallet_transactions_user', 'columns': ['user_id', 'created_at']}
            ]
        },
        {
            'name': 'notifications',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'type', 'type': 'TEXT', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'message', 'type': 'TEXT', 'nullable': False},
                {'name': 'listing_id', 'type': 'UUID'},
                {'name': 'metadata', 'type': 'TEXT'},
                {'name': 'is_read', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_notifications_user', 'columns': ['user_id', 'created_at']}
            ]
        }
    ],
    'migrations': []
}
