import os

os.environ.setdefault('KNIGHT_TOUR_DATABASE', ':memory:') # 导入 app 时不在当前目录建库

import pytest

import app as tour_app


@pytest.fixture
def client(tmp_path):
    tour_app.app.config.update(TESTING=True, DATABASE=str(tmp_path / 'tour.db'))
    tour_app.init_db()
    tour_app.engines.clear()
    with tour_app.app.test_client() as client:
        client.set_cookie('user', 'tester')
        yield client
    tour_app.engines.clear()
