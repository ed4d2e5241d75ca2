#!/usr/bin/env python3
"""
myroad.py
Command line interface for My Road
"""

import argparse
import sys
import logging
from pathlib import Path

from api import MyRoadAPI
from config import config
from models import AGE_GROUPS, CATEGORIES, GENDERS, SORT_KEYS, TIME_OF_DAY, FilterCriteria, QuotaUsage


def setup_logging(verbose: bool = False):
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def confirm_lookup(usage: QuotaUsage) -> bool:
    """Ask before spending a Places API request"""
    print("📍 Fetch detailed information for this place?")
    print("   ✅ Website, phone number and exact venue name")
    print(f"   ⚠️  Places API remaining this month: {usage.remaining}/{usage.limit}")
    print("   A Google Maps link is provided for free either way.")
    try:
        answer = input("Continue? (y/N): ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        return False
    return answer.startswith('y')


def make_api(args) -> MyRoadAPI:
    return MyRoadAPI(db_path=args.database, confirm_lookup=confirm_lookup)


def post_experience(args):
    api = make_api(args)
    result = api.post_experience(
        latitude=args.latitude, longitude=args.longitude, category=args.category,
        rating=args.rating, age_group=args.age_group, gender=args.gender,
        time_of_day=args.time_of_day, address=args.address, user_id=args.user_id
    )
    if result["success"]:
        print(f"✅ Experience posted: {result['experience']['id']}")
    else:
        print(f"❌ Could not post experience: {result['error']}")
        sys.exit(1)


def list_experiences(args):
    api = make_api(args)
    criteria = FilterCriteria(
        categories=args.category or [],
        age_groups=args.age_group or [],
        genders=args.gender or [],
        time_of_day=args.time_of_day or [],
        min_rating=args.min_rating,
        max_distance=args.max_distance,
        sort_by=args.sort_by,
        sort_order=args.order
    )
    result = api.list_experiences(criteria, args.latitude, args.longitude, args.page)

    if not result["success"]:
        print(f"❌ {result['error']}")
        sys.exit(1)

    print(f"📋 Experiences ({result['total_count']})")
    print("=" * 50)
    if not result["experiences"]:
        print("No experiences posted yet." if not result["has_data"] else "No experiences match these filters.")
        return

    for exp in result["experiences"]:
        line = f"{exp['category']}  {exp['rating']}★  {exp['age_group']}・{exp['gender']}  {exp['time_of_day']}"
        if exp['distance_text']:
            line += f"  📏 {exp['distance_text']}"
        print(line)
        address = exp.get('address') or f"{exp['latitude']:.4f}, {exp['longitude']:.4f}"
        print(f"   📍 {address[:30]}{'...' if len(address) > 30 else ''}")
        print(f"   🆔 {exp['id']}")

    print(f"\nPage {result['page']}/{result['total_pages']}")


def show_experience(args):
    api = make_api(args)
    result = api.get_experience_detail(args.experience_id)
    if not result["success"]:
        print(f"❌ {result['error']}")
        sys.exit(1)

    exp = result["experience"]
    print(f"🏷️  {exp['category']}  {exp['rating']}★")
    print(f"👥 {exp['age_group']}・{exp['gender']}  🕒 {exp['time_of_day']}")
    if exp.get('address'):
        print(f"📍 {exp['address']}")
    place = exp.get('place') or {}
    for label, key in (('🏪', 'place_name'), ('🌐', 'website'), ('📞', 'phone'), ('🗺️ ', 'google_url')):
        if place.get(key):
            print(f"{label} {place[key]}")

    print(f"\n📷 Photos: {len(result['photos'])}")
    for photo in result["photos"]:
        marker = '⭐' if photo['is_primary'] else ' '
        print(f"  {marker} {photo['photo_url']} {photo.get('caption') or ''}")

    print(f"\n💬 Comments: {result['comments_count']}")
    for comment in result["comments"]:
        stars = f" {comment['rating']}★" if comment['rating'] else ''
        print(f"  • {comment['content']}{stars}  ({comment['id'][:8]})")
        for reply in comment["replies"]:
            print(f"      ↳ {reply['content']}")


def add_comment(args):
    api = make_api(args)
    result = api.add_comment(args.experience_id, args.user_id, args.content, args.rating, args.reply_to)
    if result["success"]:
        print(f"✅ Comment posted: {result['comment']['id']}")
    else:
        print(f"❌ Could not post comment: {result['error']}")
        sys.exit(1)


def upload_photo(args):
    api = make_api(args)
    path = Path(args.file)
    if not path.exists():
        print(f"❌ Error: file '{args.file}' not found")
        sys.exit(1)

    result = api.upload_photo(args.experience_id, args.user_id, path.name, path.read_bytes(),
                              caption=args.caption, is_primary=args.primary)
    if result["success"]:
        print(f"✅ Photo uploaded: {result['photo']['photo_url']}")
    else:
        print(f"❌ Upload failed: {result['error']}")
        sys.exit(1)


def create_route(args):
    api = make_api(args)
    result = api.create_route(
        experience_ids=args.experience_ids, title=args.title, age_group=args.age_group,
        gender=args.gender, overall_rating=args.rating, description=args.description or '',
        durations=args.durations, travel_times=args.travel_times
    )
    if result["success"]:
        route = result["route"]
        print(f"✅ Route created: {route['title']} ({route['total_duration_text']})")
    else:
        print(f"❌ Could not create route: {result['error']}")
        sys.exit(1)


def list_routes(args):
    api = make_api(args)
    result = api.get_routes()
    if not result["success"]:
        print(f"❌ {result['error']}")
        sys.exit(1)

    if not result["routes"]:
        print("No routes yet.")
        return

    for route in result["routes"]:
        print(f"\n🗺️  {route['title']}  {route['overall_rating']}★  ⏱️ {route['total_duration_text']}")
        if route['description']:
            print(f"   {route['description']}")
        for step in route["steps"]:
            print(f"   {step['step_order']}. {step['category']} ({step['duration_minutes']}分)"
                  + (f" → 🚶 {step['travel_time_to_next']}分" if step['travel_time_to_next'] else ''))


def lookup_place(args):
    api = make_api(args)
    result = api.lookup_place(args.latitude, args.longitude, args.address)
    if not result["success"]:
        print(f"❌ Lookup failed: {result['error']}")
        sys.exit(1)

    place = result["place"]
    for label, key in (('🏪 Name', 'place_name'), ('🌐 Website', 'website'),
                       ('📞 Phone', 'phone'), ('🗺️  Map', 'google_url')):
        if place.get(key):
            print(f"{label}: {place[key]}")


def search_place(args):
    api = make_api(args)
    result = api.search_place(args.query)
    if not result["success"]:
        print(f"❌ {result['error']}")
        sys.exit(1)
    point = result["reference_point"]
    print(f"📍 {point.get('name') or args.query}: {point['lat']}, {point['lng']}")
    if point.get('address'):
        print(f"   {point['address']}")


def show_usage(args):
    api = make_api(args)
    usage = api.system.quota.log_usage()
    print("=== Places API usage ===")
    print(f"Month: {usage.month}")
    print(f"Used: {usage.count}/{usage.limit} ({usage.percentage}%)")
    print(f"Remaining: {usage.remaining}")
    print(f"Resets on: {api.system.quota.next_reset_date().isoformat()}")


def import_experiences(args):
    if not Path(args.csv_file).exists():
        print(f"❌ Error: CSV file '{args.csv_file}' not found")
        sys.exit(1)

    api = make_api(args)
    result = api.import_csv(args.csv_file, args.user_id)
    if result["success"]:
        print(f"✅ Imported {result['imported_count']} experiences "
              f"({result['skipped_count']} rows skipped)")
    else:
        print(f"❌ Import failed: {result.get('error', 'Unknown error')}")
        sys.exit(1)


def system_status(args):
    api = make_api(args)

    print("🔧 My Road Status")
    print("=" * 30)
    if config.has_google_api_key():
        print("✅ Google Maps API: Enabled")
    else:
        print("⚠️  Google Maps API: Disabled (set GOOGLE_MAPS_API_KEY)")

    stats = api.get_system_stats()
    if not stats["success"]:
        print(f"❌ Error getting system stats: {stats.get('error')}")
        return

    s = stats["stats"]
    print(f"\n📊 Database Statistics:")
    print(f"   📍 Experiences: {s['total_experiences']}")
    print(f"   📷 Photos: {s['total_photos']}")
    print(f"   💬 Comments: {s['total_comments']}")
    print(f"   🗺️  Routes: {s['total_routes']}")
    print(f"   🏷️  Categories: {s['categories_covered']}")
    print(f"\n💾 Database file: {args.database}")
    usage = s['places_api_usage']
    print(f"🌐 Places API this month: {usage['count']}/{usage['limit']} (resets {usage['next_reset']})")


def main():
    parser = argparse.ArgumentParser(
        description='My Road - share places you visited and build routes from them'
    )
    parser.add_argument('--database', '-d', default=config.default_db_path,
                        help='Database file path')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    post_parser = subparsers.add_parser('post', help='Post a new experience')
    post_parser.add_argument('--lat', dest='latitude', type=float, required=True)
    post_parser.add_argument('--lng', dest='longitude', type=float, required=True)
    post_parser.add_argument('--category', choices=CATEGORIES, required=True)
    post_parser.add_argument('--rating', type=int, choices=range(1, 6), required=True)
    post_parser.add_argument('--age-group', choices=AGE_GROUPS, required=True)
    post_parser.add_argument('--gender', choices=GENDERS, required=True)
    post_parser.add_argument('--time', dest='time_of_day', choices=TIME_OF_DAY, required=True)
    post_parser.add_argument('--address', help='Street address (optional)')
    post_parser.add_argument('--user', dest='user_id', help='Owner user ID (omit to post anonymously)')

    list_parser = subparsers.add_parser('list', help='List experiences with filters')
    list_parser.add_argument('--category', action='append', choices=CATEGORIES)
    list_parser.add_argument('--age-group', action='append', choices=AGE_GROUPS)
    list_parser.add_argument('--gender', action='append', choices=GENDERS)
    list_parser.add_argument('--time', dest='time_of_day', action='append', choices=TIME_OF_DAY)
    list_parser.add_argument('--min-rating', type=int, default=1, choices=range(1, 6))
    list_parser.add_argument('--lat', dest='latitude', type=float, help='Reference point latitude')
    list_parser.add_argument('--lng', dest='longitude', type=float, help='Reference point longitude')
    list_parser.add_argument('--max-distance', type=float, help='Maximum distance in km from the reference point')
    list_parser.add_argument('--sort-by', choices=SORT_KEYS, default='created_at')
    list_parser.add_argument('--order', choices=['asc', 'desc'], default='desc')
    list_parser.add_argument('--page', type=int, default=1)

    show_parser = subparsers.add_parser('show', help='Show an experience with photos and comments')
    show_parser.add_argument('experience_id')

    comment_parser = subparsers.add_parser('comment', help='Comment on an experience')
    comment_parser.add_argument('experience_id')
    comment_parser.add_argument('content')
    comment_parser.add_argument('--user', dest='user_id', required=True)
    comment_parser.add_argument('--rating', type=int, choices=range(1, 6))
    comment_parser.add_argument('--reply-to', help='Parent comment ID')

    photo_parser = subparsers.add_parser('photo', help='Attach a photo to an experience')
    photo_parser.add_argument('experience_id')
    photo_parser.add_argument('file')
    photo_parser.add_argument('--user', dest='user_id', required=True)
    photo_parser.add_argument('--caption')
    photo_parser.add_argument('--primary', action='store_true', help='Use as the primary photo')

    route_parser = subparsers.add_parser('route', help='Create a route from experiences')
    route_parser.add_argument('experience_ids', nargs='+', help='Experience IDs in visiting order')
    route_parser.add_argument('--title', required=True)
    route_parser.add_argument('--description')
    route_parser.add_argument('--age-group', choices=AGE_GROUPS, required=True)
    route_parser.add_argument('--gender', choices=GENDERS, required=True)
    route_parser.add_argument('--rating', type=float, default=5)
    route_parser.add_argument('--durations', type=int, nargs='+', help='Minutes spent at each stop')
    route_parser.add_argument('--travel-times', type=int, nargs='+', help='Minutes of travel after each stop')

    subparsers.add_parser('routes', help='List routes')

    lookup_parser = subparsers.add_parser('lookup', help='Look up venue details for a location')
    lookup_parser.add_argument('--lat', dest='latitude', type=float, required=True)
    lookup_parser.add_argument('--lng', dest='longitude', type=float, required=True)
    lookup_parser.add_argument('--address')

    search_parser = subparsers.add_parser('search', help='Search a place to use as reference point')
    search_parser.add_argument('query')

    subparsers.add_parser('usage', help='Show Places API usage for this month')

    import_parser = subparsers.add_parser('import', help='Import experiences from CSV')
    import_parser.add_argument('csv_file', help='Path to CSV file containing experiences')
    import_parser.add_argument('--user', dest='user_id', help='Owner for rows without a user_id')

    subparsers.add_parser('status', help='Show system status')

    args = parser.parse_args()

    setup_logging(args.verbose)

    commands = {
        'post': post_experience,
        'list': list_experiences,
        'show': show_experience,
        'comment': add_comment,
        'photo': upload_photo,
        'route': create_route,
        'routes': list_routes,
        'lookup': lookup_place,
        'search': search_place,
        'usage': show_usage,
        'import': import_experiences,
        'status': system_status,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)
    handler(args)


if __name__ == "__main__":
    main()
