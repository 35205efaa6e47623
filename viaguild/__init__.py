"""
ViaGuild — Badge System Core
==============================
Reusable badge templates, awarded badge instances, tiered award
allocations and curated badge cases for the ViaGuild social platform.
Every badge a profile or guild page shows is resolved here: instance
overrides merged over template defaults, with tier colours enforced last.

Package layout::

    viaguild/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Tier colours, default allocations, fallbacks
    ├── errors.py          # Typed domain errors (ErrorKind)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default system icon seeder
    ├── engine/
    │   ├── visual_config.py  # Tagged-union visual configs + extraction
    │   ├── legacy.py      # Legacy scalar ↔ config bridge
    │   └── display.py     # Override resolution + tier rule
    ├── services/
    │   ├── template_service.py    # Badge template store
    │   ├── instance_service.py    # Revocation, listings, serialisation
    │   ├── award_service.py       # Allocations + give-badge transaction
    │   ├── badge_case_service.py  # Curated badge cases
    │   ├── storage_service.py     # Temp → permanent asset storage
    │   ├── system_icon_service.py # Icon name → SVG markup
    │   ├── notification_service.py
    │   └── user_directory.py      # Case-insensitive username lookup
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT bearer auth + engine/config providers
        └── routes/        # Templates, badges, badge case, uploads, icons
"""

__version__ = "0.1.0"
