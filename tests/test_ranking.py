import pytest

from models import FilterCriteria, ReferencePoint, ValidationError
from ranking import ExperienceBrowser, filter_experiences, paginate, rank_experiences, rank_page

KM_PER_DEGREE = 111.19492664455873


def ids(ranked):
    return [r.experience.id for r in ranked]


def test_category_filter_keeps_source_order(make_experience):
    source = [
        make_experience(id='a', category='カフェ', rating=5),
        make_experience(id='b', category='居酒屋', rating=3),
        make_experience(id='c', category='カフェ', rating=4),
    ]

    ranked = rank_experiences(source, FilterCriteria(categories=['カフェ']))

    assert ids(ranked) == ['a', 'c']
    assert [r.experience.rating for r in ranked] == [5, 4]


def test_filters_combine_across_dimensions(make_experience):
    source = [
        make_experience(id='a', category='カフェ', gender='女性', time_of_day='朝'),
        make_experience(id='b', category='カフェ', gender='男性', time_of_day='朝'),
        make_experience(id='c', category='銭湯', gender='女性', time_of_day='夜'),
        make_experience(id='d', category='銭湯', gender='女性', time_of_day='朝'),
    ]
    criteria = FilterCriteria(categories=['カフェ', '銭湯'], genders=['女性'], time_of_day=['朝'])

    assert ids(rank_experiences(source, criteria)) == ['a', 'd']


def test_age_group_filter(make_experience):
    source = [make_experience(id='a', age_group='20代'), make_experience(id='b', age_group='60代以上')]
    assert ids(rank_experiences(source, FilterCriteria(age_groups=['60代以上']))) == ['b']


def test_empty_criteria_returns_everything(make_experience):
    source = [make_experience() for _ in range(5)]
    assert len(rank_experiences(source, FilterCriteria())) == 5


def test_min_rating_is_monotonic(make_experience):
    source = [make_experience(rating=r) for r in (1, 2, 3, 3, 4, 5, 5)]
    sizes = [len(rank_experiences(source, FilterCriteria(min_rating=k))) for k in range(1, 6)]
    assert sizes == [7, 6, 5, 3, 2]
    assert sizes == sorted(sizes, reverse=True)


def test_max_distance_keeps_only_nearby(make_experience):
    source = [
        make_experience(id='near', latitude=35.0 + 0.05 / KM_PER_DEGREE),
        make_experience(id='two', latitude=35.0 + 2 / KM_PER_DEGREE),
        make_experience(id='ten', latitude=35.0 + 10 / KM_PER_DEGREE),
    ]
    point = ReferencePoint(lat=35.0, lng=139.0)

    ranked = rank_experiences(source, FilterCriteria(max_distance=1), point)

    assert ids(ranked) == ['near']
    assert ranked[0].distance_km == pytest.approx(0.05, abs=1e-6)


def test_max_distance_ignored_without_reference_point(make_experience):
    source = [make_experience(latitude=10.0), make_experience(latitude=-10.0)]

    ranked = filter_experiences(source, FilterCriteria(max_distance=1))

    assert len(ranked) == 2
    assert all(r.distance_km is None for r in ranked)


def test_distance_attached_when_reference_point_present(make_experience):
    source = [make_experience(latitude=36.0)]
    ranked = rank_experiences(source, FilterCriteria(), ReferencePoint(lat=35.0, lng=139.0))
    assert ranked[0].distance_km == pytest.approx(KM_PER_DEGREE)


def test_sort_by_rating_descending_is_stable(make_experience):
    source = [
        make_experience(id='a', rating=3),
        make_experience(id='b', rating=5),
        make_experience(id='c', rating=3),
        make_experience(id='d', rating=5),
    ]

    ranked = rank_experiences(source, FilterCriteria(sort_by='rating', sort_order='desc'))

    assert ids(ranked) == ['b', 'd', 'a', 'c']


def test_sort_by_rating_ascending_is_stable(make_experience):
    source = [
        make_experience(id='a', rating=3),
        make_experience(id='b', rating=5),
        make_experience(id='c', rating=3),
    ]
    ranked = rank_experiences(source, FilterCriteria(sort_by='rating', sort_order='asc'))
    assert ids(ranked) == ['a', 'c', 'b']


def test_ascending_reversed_matches_descending(make_experience):
    source = [make_experience(rating=r) for r in (4, 1, 5, 2, 2, 3, 5)]

    asc = rank_experiences(source, FilterCriteria(sort_by='rating', sort_order='asc'))
    desc = rank_experiences(source, FilterCriteria(sort_by='rating', sort_order='desc'))

    assert [r.experience.rating for r in reversed(asc)] == [r.experience.rating for r in desc]


def test_sort_by_created_at(make_experience):
    source = [make_experience(id='new'), make_experience(id='old')]

    assert ids(rank_experiences(source, FilterCriteria(sort_by='created_at', sort_order='desc'))) == ['new', 'old']
    assert ids(rank_experiences(source, FilterCriteria(sort_by='created_at', sort_order='asc'))) == ['old', 'new']


def test_sort_by_string_fields(make_experience):
    source = [
        make_experience(id='a', age_group='40代', gender='男性'),
        make_experience(id='b', age_group='10代', gender='女性'),
        make_experience(id='c', age_group='30代', gender='その他'),
    ]

    by_age = rank_experiences(source, FilterCriteria(sort_by='age_group', sort_order='asc'))
    assert ids(by_age) == ['b', 'c', 'a']

    by_gender = rank_experiences(source, FilterCriteria(sort_by='gender', sort_order='asc'))
    assert [r.experience.gender for r in by_gender] == sorted(['男性', '女性', 'その他'])


def test_sort_by_distance(make_experience):
    source = [
        make_experience(id='far', latitude=35.2),
        make_experience(id='near', latitude=35.01),
        make_experience(id='mid', latitude=35.1),
    ]
    point = ReferencePoint(lat=35.0, lng=139.0)

    asc = rank_experiences(source, FilterCriteria(sort_by='distance', sort_order='asc'), point)
    desc = rank_experiences(source, FilterCriteria(sort_by='distance', sort_order='desc'), point)

    assert ids(asc) == ['near', 'mid', 'far']
    assert ids(desc) == ['far', 'mid', 'near']


def test_sort_by_distance_without_reference_point_keeps_order(make_experience):
    source = [make_experience(id='x', latitude=35.2), make_experience(id='y', latitude=35.01)]
    ranked = rank_experiences(source, FilterCriteria(sort_by='distance', sort_order='asc'))
    assert ids(ranked) == ['x', 'y']


def test_unknown_sort_key_rejected():
    with pytest.raises(ValidationError):
        FilterCriteria(sort_by='popularity')


def test_pagination_of_25_records(make_experience):
    source = [make_experience(id=f'e{i:02d}') for i in range(25)]
    ranked = rank_experiences(source, FilterCriteria())

    pages = [paginate(ranked, n) for n in (1, 2, 3)]

    assert [len(p.items) for p in pages] == [10, 10, 5]
    assert all(p.total_pages == 3 and p.total_count == 25 for p in pages)
    assert ids(pages[0].items) == [f'e{i:02d}' for i in range(10)]
    assert ids(pages[2].items) == [f'e{i:02d}' for i in range(20, 25)]


def test_concatenated_pages_reproduce_ranking(make_experience):
    source = [make_experience(rating=(i % 5) + 1) for i in range(37)]
    criteria = FilterCriteria(sort_by='rating', sort_order='desc', min_rating=2)
    ranked = rank_experiences(source, criteria)

    first = rank_page(source, criteria)
    collected = []
    for n in range(1, first.total_pages + 1):
        collected.extend(rank_page(source, criteria, page=n).items)

    assert ids(collected) == ids(ranked)
    assert len(set(ids(collected))) == len(collected)


def test_page_out_of_range_is_clamped(make_experience):
    ranked = rank_experiences([make_experience() for _ in range(15)], FilterCriteria())
    assert paginate(ranked, 0).page == 1
    assert paginate(ranked, 99).page == 2
    assert len(paginate(ranked, 99).items) == 5


def test_empty_source_gives_empty_page():
    page = rank_page([], FilterCriteria(categories=['カフェ']))
    assert page.items == []
    assert page.total_pages == 0
    assert page.total_count == 0
    assert page.page == 1
    assert not page.has_next and not page.has_previous


def test_browser_distinguishes_unloaded_from_no_matches(make_experience):
    browser = ExperienceBrowser()
    assert not browser.is_loaded
    assert browser.current_page().total_count == 0

    browser.set_experiences([make_experience(category='公園')])
    browser.set_criteria(FilterCriteria(categories=['カフェ']))
    assert browser.is_loaded
    assert browser.current_page().total_count == 0


def test_browser_resets_page_on_input_change(make_experience):
    browser = ExperienceBrowser(page_size=5)
    browser.set_experiences([make_experience(rating=(i % 5) + 1) for i in range(20)])

    browser.go_to_page(3)
    assert browser.page == 3

    browser.set_criteria(FilterCriteria(min_rating=2))
    assert browser.page == 1

    browser.next_page()
    browser.set_reference_point(ReferencePoint(lat=35.0, lng=139.0))
    assert browser.page == 1

    browser.next_page()
    browser.set_experiences([make_experience() for _ in range(12)])
    assert browser.page == 1


def test_browser_keeps_page_when_inputs_unchanged(make_experience):
    browser = ExperienceBrowser(page_size=5)
    browser.set_experiences([make_experience() for _ in range(12)])
    browser.next_page()

    browser.set_criteria(FilterCriteria())
    browser.set_reference_point(None)

    assert browser.page == 2
    assert browser.previous_page().page == 1


def test_active_filter_count():
    assert FilterCriteria().active_filter_count() == 0
    criteria = FilterCriteria(categories=['カフェ', '公園'], genders=['女性'], min_rating=3, max_distance=5)
    assert criteria.active_filter_count() == 5
    assert FilterCriteria(max_distance=50).active_filter_count() == 0


def test_cleared_criteria():
    assert FilterCriteria.cleared().max_distance is None
    cleared = FilterCriteria.cleared(has_reference_point=True)
    assert cleared.max_distance == 5
    assert cleared.sort_by == 'created_at' and cleared.sort_order == 'desc'


def test_browser_sees_criteria_edited_in_place(make_experience):
    browser = ExperienceBrowser(page_size=1)
    browser.set_experiences([make_experience(id='cafe', category='カフェ'),
                             make_experience(id='park', category='公園')])
    criteria = FilterCriteria(sort_by='rating')
    browser.set_criteria(criteria)
    browser.next_page()
    assert browser.page == 2

    criteria.categories.append('カフェ')
    browser.set_criteria(criteria)

    assert browser.page == 1
    assert ids(browser.all_ranked()) == ['cafe']
    assert browser.criteria.categories == ['カフェ']


def test_browser_criteria_cannot_be_changed_from_outside(make_experience):
    browser = ExperienceBrowser()
    browser.set_experiences([make_experience(category='公園')])

    browser.criteria.categories.append('カフェ')

    assert browser.criteria.categories == []
    assert len(browser.all_ranked()) == 1


def test_browser_clear_reference_point(make_experience):
    browser = ExperienceBrowser(page_size=1)
    browser.set_experiences([make_experience(latitude=35.1), make_experience(latitude=35.2)])
    browser.set_reference_point(ReferencePoint(lat=35.0, lng=139.0))
    assert all(r.distance_km is not None for r in browser.all_ranked())
    browser.next_page()

    browser.clear_reference_point()

    assert browser.reference_point is None
    assert browser.page == 1
    assert all(r.distance_km is None for r in browser.all_ranked())


def test_zero_max_distance_means_no_limit(make_experience):
    source = [make_experience(id='here'), make_experience(id='away', latitude=35.5)]
    ranked = rank_experiences(source, FilterCriteria(max_distance=0), ReferencePoint(lat=35.0, lng=139.0))
    assert ids(ranked) == ['here', 'away']
    assert FilterCriteria(max_distance=0).active_filter_count() == 0
