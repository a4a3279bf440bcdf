"""Development seed data: one administrator and a handful of sample games."""
import logging
import os

from ..models import Genre, utcnow
from ..security import hash_password

logger = logging.getLogger('topgames.storage.seed')

DEFAULT_ADMIN = {
    'username': 'admin',
    'password': 'admin123',
    'email': 'admin@topbestgames.com',
    'full_name': 'Administrator',
}

_IMG = 'https://images.unsplash.com/photo-{}?auto=format&fit=crop&w={}&h={}&q=80'

# (title, developer, genre, description, image id); the first four are
# trending, the last three featured.
SEED_GAMES = [
    ('Cyberpunk 2077', 'CD Projekt Red', Genre.ACTION,
     'Open-world RPG set in a dystopian future where body modification has become commonplace.',
     '1552820728-8b83bb6b773f'),
    ('Elden Ring', 'FromSoftware', Genre.ADVENTURE,
     'Action RPG set in a vast open world with challenging combat and deep lore.',
     '1592155931584-901ac15763e3'),
    ('God of War: Ragnarök', 'Santa Monica Studio', Genre.RPG,
     'Action-adventure game following Kratos and Atreus through the realms of Norse mythology.',
     '1612287230202-1ff1d85d1bdf'),
    ('Starfield', 'Bethesda Game Studios', Genre.STRATEGY,
     'Space exploration RPG with hundreds of planets to discover and explore.',
     '1509198397868-475647b2a1e5'),
    ('The Legend of Zelda: TOTK', 'Nintendo', Genre.SIMULATION,
     'Open-world adventure game with innovative gameplay mechanics and a vast world to explore.',
     '1616872153334-9054deb40bd1'),
    ('Red Dead Redemption 2', 'Rockstar Games', Genre.SPORTS,
     'Epic wild west adventure with a compelling story and stunning open world.',
     '1472457897821-70d3819a0e24'),
    ('The Witcher 3: Wild Hunt', 'CD Projekt Red', Genre.ACTION,
     'Massive open-world RPG with deep storytelling and challenging combat.',
     '1511512578047-dfb367046420'),
]

TRENDING_COUNT = 4


def admin_account() -> dict:
    """Seed admin fields, overridable through ``TOPGAMES_ADMIN_*`` variables."""
    return {
        'username': os.getenv('TOPGAMES_ADMIN_USERNAME', DEFAULT_ADMIN['username']),
        'password': os.getenv('TOPGAMES_ADMIN_PASSWORD', DEFAULT_ADMIN['password']),
        'email': os.getenv('TOPGAMES_ADMIN_EMAIL', DEFAULT_ADMIN['email']),
        'full_name': DEFAULT_ADMIN['full_name'],
    }


def seed_catalog(storage) -> None:
    """Write the admin account and sample games through *storage*'s public API."""
    admin = admin_account()
    storage.create_user({
        'username': admin['username'],
        'password': hash_password(admin['password']),
        'email': admin['email'],
        'full_name': admin['full_name'],
        'avatar': '',
        'is_admin': True,
    })
    for index, (title, developer, genre, description, image) in enumerate(SEED_GAMES):
        wide = index >= TRENDING_COUNT
        storage.create_game({
            'title': title,
            'description': description,
            'genre': genre,
            'developer': developer,
            'image_url': _IMG.format(image, 384 if wide else 288, 216 if wide else 162),
            'release_date': utcnow(),
            'is_trending': index < TRENDING_COUNT,
            'is_featured': index >= TRENDING_COUNT,
        })
    logger.info("Seeded admin '%s' and %d sample games", admin['username'], len(SEED_GAMES))
