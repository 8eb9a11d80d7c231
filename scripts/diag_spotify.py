#!/usr/bin/env python3
"""
Diagnose Spotify authentication and the battle endpoints' upstream calls.

Usage:
    python scripts/diag_spotify.py [playlist_url]
"""

import os
import sys

from dotenv import load_dotenv

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

# Load .env file if it exists
env_file = os.path.join(ROOT, '.env')
if os.path.exists(env_file):
    print(f"✓ Loading .env from: {env_file}")
    load_dotenv(env_file)
else:
    print(f"⚠ No .env file found at: {env_file}")

env_local_file = os.path.join(ROOT, '.env.local')
if os.path.exists(env_local_file):
    print(f"✓ Loading .env.local from: {env_local_file}")
    load_dotenv(env_local_file, override=True)

from core import extract_playlist_id
from lib.spotify import (
    BattleError,
    get_audio_features,
    get_playlist_info,
    get_playlist_tracks,
    get_spotify_client,
    get_token_provider,
)

print("\n" + "="*60)
print("ENVIRONMENT VARIABLES CHECK")
print("="*60)

for var in ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET"):
    print(f"{var}: {'set' if os.getenv(var) else 'NOT SET'}")

print("\n" + "="*60)
print("TEST 1: Client credentials token exchange")
print("="*60)

try:
    provider = get_token_provider()
    provider.get_token()
    print(f"✓ SUCCESS: token cached until {int(provider.expires_at)} (epoch seconds)")
except BattleError as e:
    print(f"\n❌ {e.__class__.__name__}: {e}")
    sys.exit(1)

print("\n" + "="*60)
print("TEST 2: Playlist + audio features")
print("="*60)

url = sys.argv[1] if len(sys.argv) > 1 else "https://open.spotify.com/playlist/37i9dQZEVXbMDoHDwVN2tF"
playlist_id = extract_playlist_id(url)
if not playlist_id:
    print(f"❌ Invalid playlist link: {url}")
    sys.exit(1)

sp = get_spotify_client(provider)
try:
    info = get_playlist_info(sp, playlist_id)
    tracks = get_playlist_tracks(sp, playlist_id)
    print(f"✓ {info.name}: {len(tracks)} tracks, cover={'yes' if info.image_url else 'no'}")
    features = get_audio_features(sp, [t.id for t in tracks])
    print(f"✓ audio features for {len(features)} tracks")
except BattleError as e:
    print(f"\n❌ {e.__class__.__name__}: {e} meta={e.meta}")
    sys.exit(1)
