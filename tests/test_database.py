import pytest

from database import DatabaseManager
from models import PlaceInfo, Route, RouteStep, ValidationError


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(str(tmp_path / 'test.db'))


@pytest.fixture
def stored(db, make_experience):
    """Two saved experiences: exp-1 (newer) and exp-2"""
    first = db.save_experience(make_experience(address='東京都渋谷区'))
    second = db.save_experience(make_experience(category='銭湯', rating=5))
    return first, second


def test_save_and_get_experience(db, make_experience):
    experience = make_experience(
        address='東京都新宿区', user_id='user-1',
        place=PlaceInfo(place_id='abc', place_name='喫茶ミチ', google_url='https://maps.google.com/?cid=1')
    )
    db.save_experience(experience)

    loaded = db.get_experience(experience.id)

    assert loaded == experience
    assert loaded.place.place_name == '喫茶ミチ'


def test_experience_without_place_info_loads_none(db, stored):
    assert db.get_experience(stored[0].id).place is None


def test_get_missing_experience(db):
    assert db.get_experience('nope') is None


def test_invalid_experience_is_rejected(db, make_experience):
    with pytest.raises(ValidationError):
        db.save_experience(make_experience(rating=6))
    with pytest.raises(ValidationError):
        db.save_experience(make_experience(category='ボウリング'))
    assert db.count_experiences() == 0


def test_all_experiences_newest_first(db, stored):
    assert [e.id for e in db.get_all_experiences()] == ['exp-1', 'exp-2']
    assert db.count_experiences() == 2
    assert db.get_available_categories() == sorted(['カフェ', '銭湯'])


def test_resaving_experience_replaces_it(db, stored, make_experience):
    db.save_experience(make_experience(id='exp-1', rating=1))
    assert db.count_experiences() == 2
    assert db.get_experience('exp-1').rating == 1


def test_comment_threading(db, stored):
    experience = stored[0]
    first = db.create_comment(experience.id, 'alice', '最高でした', rating=5)
    second = db.create_comment(experience.id, 'bob', 'また行きたい')
    reply_a = db.create_comment(experience.id, 'carol', '同感です', parent_comment_id=first.id)
    reply_b = db.create_comment(experience.id, 'dave', '私も', parent_comment_id=first.id)

    comments = db.get_experience_comments(experience.id)

    assert [c.id for c in comments] == [second.id, first.id]
    assert [r.id for r in comments[1].replies] == [reply_a.id, reply_b.id]
    assert comments[0].replies == []
    assert db.count_comments(experience.id) == 4


def test_reply_must_target_same_experience(db, stored):
    comment = db.create_comment(stored[0].id, 'alice', 'よかった')

    with pytest.raises(ValidationError):
        db.create_comment(stored[1].id, 'bob', '返信', parent_comment_id=comment.id)
    with pytest.raises(ValidationError):
        db.create_comment(stored[0].id, 'bob', '返信', parent_comment_id='missing')


@pytest.mark.parametrize('content, rating', [
    ('   ', None),
    ('x' * 1001, None),
    ('ok', 0),
    ('ok', 6),
])
def test_invalid_comment_rejected(db, stored, content, rating):
    with pytest.raises(ValidationError):
        db.create_comment(stored[0].id, 'alice', content, rating=rating)


def test_update_comment_marks_edited(db, stored):
    comment = db.create_comment(stored[0].id, 'alice', '初稿')

    updated = db.update_comment(comment.id, content='  修正版  ', rating=4)

    assert updated.content == '修正版'
    assert updated.is_edited
    reloaded = db.get_comment(comment.id)
    assert reloaded.content == '修正版'
    assert reloaded.rating == 4
    assert reloaded.is_edited


def test_update_missing_comment(db):
    assert db.update_comment('missing', content='x') is None


def test_deleting_comment_removes_replies(db, stored):
    parent = db.create_comment(stored[0].id, 'alice', '親')
    db.create_comment(stored[0].id, 'bob', '子', parent_comment_id=parent.id)

    assert db.delete_comment(parent.id)
    assert db.count_comments(stored[0].id) == 0
    assert not db.delete_comment(parent.id)


def test_user_comments_carry_experience_summary(db, stored):
    top = db.create_comment(stored[0].id, 'alice', 'よかった')
    db.create_comment(stored[0].id, 'alice', '返信', parent_comment_id=top.id)
    db.create_comment(stored[1].id, 'bob', '別の人')

    comments = db.get_user_comments('alice')

    assert [c.id for c in comments] == [top.id]
    assert comments[0].experience_summary == {'category': 'カフェ', 'address': '東京都渋谷区'}


def test_photos_and_primary_flag(db, stored):
    experience = stored[0]
    one = db.create_photo(experience.id, 'alice', 'file:///a.jpg', is_primary=True)
    two = db.create_photo(experience.id, 'alice', 'file:///b.jpg', caption='外観')

    assert db.set_primary_photo(experience.id, two.id)

    photos = {p.id: p for p in db.get_experience_photos(experience.id)}
    assert photos[two.id].is_primary
    assert not photos[one.id].is_primary
    assert photos[two.id].caption == '外観'


def test_set_primary_for_unknown_photo_keeps_existing(db, stored):
    experience = stored[0]
    photo = db.create_photo(experience.id, 'alice', 'file:///a.jpg', is_primary=True)

    assert not db.set_primary_photo(experience.id, 'missing')
    assert db.get_photo(photo.id).is_primary


def test_update_and_delete_photo(db, stored):
    photo = db.create_photo(stored[0].id, 'alice', 'file:///a.jpg')

    updated = db.update_photo(photo.id, caption='夜景')
    assert updated.caption == '夜景'
    assert not updated.is_primary

    assert [p.id for p in db.get_user_photos('alice')] == [photo.id]
    assert db.delete_photo(photo.id)
    assert db.get_photo(photo.id) is None
    assert not db.delete_photo(photo.id)


def _route(stored, **overrides):
    fields = dict(
        id='route-1', title='渋谷はしご', age_group='20代', gender='女性', overall_rating=4.5,
        steps=[
            RouteStep(experience_id=stored[0].id, step_order=1, duration_minutes=45,
                      travel_time_to_next=10, notes='先に行く'),
            RouteStep(experience_id=stored[1].id, step_order=2, duration_minutes=90,
                      travel_time_to_next=0),
        ]
    )
    fields.update(overrides)
    return Route(**fields)


def test_save_and_load_route(db, stored):
    db.save_route(_route(stored))

    route = db.get_route('route-1')

    assert route.title == '渋谷はしご'
    assert [s.experience_id for s in route.steps] == [stored[0].id, stored[1].id]
    assert route.steps[0].notes == '先に行く'
    assert route.steps[1].experience.category == '銭湯'
    assert route.total_duration == 145
    assert [r.id for r in db.get_routes()] == ['route-1']


@pytest.mark.parametrize('overrides', [
    {'title': '  '},
    {'overall_rating': 4.3},
    {'overall_rating': 0.5},
    {'gender': '不明'},
])
def test_invalid_route_rejected(db, stored, overrides):
    with pytest.raises(ValidationError):
        db.save_route(_route(stored, **overrides))
    assert db.get_routes() == []


def test_route_needs_two_steps(db, stored):
    route = _route(stored)
    route.steps = route.steps[:1]
    with pytest.raises(ValidationError):
        db.save_route(route)


def test_stats(db, stored):
    db.create_comment(stored[0].id, 'alice', 'よかった')
    db.create_photo(stored[0].id, 'alice', 'file:///a.jpg')
    db.save_route(_route(stored))

    assert db.get_stats() == {
        'total_experiences': 2,
        'total_photos': 1,
        'total_comments': 1,
        'total_routes': 1,
        'categories_covered': 2,
    }


def test_boolean_rating_rejected(db, make_experience):
    with pytest.raises(ValidationError):
        db.save_experience(make_experience(rating=True))
