from flask import Flask, request, jsonify, send_from_directory, render_template, make_response, Response
import sqlite3
import threading
import uuid
import os
from collections import OrderedDict
from tour import TourEngine, InvalidMoveError, parse_square_key

app = Flask(__name__)
app.config.update(
    DATABASE='tour.db',
    MIN_SIZE=3,
    MAX_SIZE=12,
    DEFAULT_SIZE=5,
    DEFAULT_STYLE='number',
    KNIGHT_ICON='knight.svg',
    MAX_ENGINES=1000,
)
app.config.from_prefixed_env('KNIGHT_TOUR')

VISITED_STYLES = ('icon', 'number') # 已走格子的显示方式：马的图标 / 步数

FALLBACK_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 64 64">'
    '<path d="M18 56h30v-6H18zM22 48h22c0-10-4-16-4-24 6 2 10 0 12-4L40 8c-10 0-20 8-22 22'
    ' 4-2 8-2 10 0-6 6-8 12-6 18z" fill="#222"/></svg>'
)

engines = OrderedDict() # uid -> TourEngine，只保存在内存中，按最近使用排序
engines_lock = threading.Lock()


def init_db(): # 初始化数据库
    conn = sqlite3.connect(app.config['DATABASE'])
    c = conn.cursor()
    c.execute('''
        CREATE TABLE IF NOT EXISTS preferences
        (uid TEXT PRIMARY KEY,
         kt_size INTEGER,
         kt_style TEXT)
    ''')
    conn.commit()
    conn.close()

init_db()


def load_preferences(uid):
    conn = sqlite3.connect(app.config['DATABASE'])
    c = conn.cursor()
    c.execute('SELECT kt_size, kt_style FROM preferences WHERE uid = ?', (uid,))
    result = c.fetchone()
    conn.close()

    if result:
        return {'n': result[0], 'style': result[1]}
    return {'n': app.config['DEFAULT_SIZE'], 'style': app.config['DEFAULT_STYLE']}


def save_preferences(uid, n=None, style=None):
    # 一条 UPSERT 完成，只改传入的字段；并发写同一用户不会冲突或互相覆盖
    conn = sqlite3.connect(app.config['DATABASE'])
    c = conn.cursor()
    c.execute('''
        INSERT INTO preferences (uid, kt_size, kt_style)
        VALUES (:uid, COALESCE(:n, :default_n), COALESCE(:style, :default_style))
        ON CONFLICT(uid) DO UPDATE SET
            kt_size = COALESCE(:n, kt_size),
            kt_style = COALESCE(:style, kt_style)
    ''', {
        'uid': uid,
        'n': n,
        'style': style,
        'default_n': app.config['DEFAULT_SIZE'],
        'default_style': app.config['DEFAULT_STYLE'],
    })
    conn.commit()
    conn.close()

    app.logger.info('preferences for %s: n=%s style=%s', uid, n, style)
    return load_preferences(uid)


def get_engine(uid): # 调用方需持有 engines_lock
    engine = engines.get(uid)
    if engine is None:
        engine = TourEngine(load_preferences(uid)['n'])
        engines[uid] = engine
        while len(engines) > app.config['MAX_ENGINES']: # 超出上限时丢弃最久未用的棋局
            dropped, _ = engines.popitem(last=False)
            app.logger.info('dropped tour of %s', dropped)
    else:
        engines.move_to_end(uid)
    return engine


def valid_size(n):
    return (isinstance(n, int) and not isinstance(n, bool)
            and app.config['MIN_SIZE'] <= n <= app.config['MAX_SIZE'])


def json_body(): # 请求体不是 JSON 对象时当作空对象
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def bad_request(message):
    return jsonify({'success': False, 'message': message}), 400


def missing_user():
    return jsonify({
        'success': False,
        'message': '缺少用户标识数据'
    }), 400


def tour_response(uid, engine, **extra):
    return jsonify({
        'success': True,
        'state': engine.snapshot(),
        'preferences': load_preferences(uid),
        **extra
    })


@app.route('/')
def index(): # 主页面
    uid = request.cookies.get("user")
    if not uid:
        uid = str(uuid.uuid4())
    response = make_response(render_template('index.html'))
    response.set_cookie("user", uid)
    return response

@app.route('/knight.svg')
def knight_icon(): # 马的图标，静态文件缺失时返回内置图标
    filename = app.config['KNIGHT_ICON']
    if app.static_folder and os.path.isfile(os.path.join(app.static_folder, filename)):
        return send_from_directory(app.static_folder, filename)
    app.logger.info('knight icon %s not found, serving fallback', filename)
    return Response(FALLBACK_SVG, mimetype='image/svg+xml')

@app.route('/api/state', methods=['GET'])
def get_state(): # 当前棋局
    uid = request.cookies.get("user")
    if not uid:
        return missing_user()

    with engines_lock:
        engine = get_engine(uid)
        return tour_response(uid, engine)

@app.route('/api/click', methods=['POST'])
def click(): # 点击格子：放马或走一步
    uid = request.cookies.get("user")
    if not uid:
        return missing_user()

    data = json_body()
    if 'key' in data:
        try:
            row, col = parse_square_key(str(data['key']))
        except ValueError:
            return bad_request('格子坐标格式错误')
    else:
        row, col = data.get('row'), data.get('col')
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in (row, col)):
            return bad_request('格子坐标格式错误')

    with engines_lock:
        engine = get_engine(uid)
        try:
            engine.place_or_move((row, col))
        except InvalidMoveError as e:
            app.logger.debug('invalid move for %s: %s', uid, e)
            return jsonify({
                'success': False,
                'message': '无效的走法',
                'state': engine.snapshot()
            })
        return tour_response(uid, engine)

@app.route('/api/undo', methods=['POST'])
def undo(): # 悔棋，没有步数时什么也不做
    uid = request.cookies.get("user")
    if not uid:
        return missing_user()

    with engines_lock:
        engine = get_engine(uid)
        square = engine.undo()
        return tour_response(uid, engine, undone=list(square) if square is not None else None)

@app.route('/api/reset', methods=['POST'])
def reset(): # 清空棋盘，保持大小
    uid = request.cookies.get("user")
    if not uid:
        return missing_user()

    with engines_lock:
        engine = get_engine(uid)
        engine.reset()
        return tour_response(uid, engine)

@app.route('/api/new', methods=['POST'])
def new_tour(): # 新开一局，可同时更换棋盘大小
    uid = request.cookies.get("user")
    if not uid:
        return missing_user()

    data = json_body()
    n = data.get('n')
    if n is not None and not valid_size(n):
        return bad_request(f'棋盘大小必须在{app.config["MIN_SIZE"]}到{app.config["MAX_SIZE"]}之间')

    with engines_lock:
        engine = get_engine(uid)
        if n is None:
            n = load_preferences(uid)['n']
        else:
            save_preferences(uid, n=n)
        engine.reset(n)
        app.logger.info('new %dx%d tour for %s', engine.n, engine.n, uid)
        return tour_response(uid, engine)

@app.route('/api/preferences', methods=['GET', 'POST'])
def preferences(): # 读取/保存棋盘大小和显示方式
    uid = request.cookies.get("user")
    if not uid:
        return missing_user()

    if request.method == 'GET':
        return jsonify({'success': True, 'preferences': load_preferences(uid)})

    data = json_body()
    n = data.get('n')
    style = data.get('style')
    if n is not None and not valid_size(n):
        return bad_request(f'棋盘大小必须在{app.config["MIN_SIZE"]}到{app.config["MAX_SIZE"]}之间')
    if style is not None and style not in VISITED_STYLES:
        return bad_request(f'未知的显示方式: {style}')

    return jsonify({'success': True, 'preferences': save_preferences(uid, n=n, style=style)})

if __name__ == '__main__':
    app.run(debug=True, port=5000)
