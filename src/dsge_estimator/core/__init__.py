"""モデル仕様・平衡条件ソルバー・例外"""
