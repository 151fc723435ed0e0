"""
A Click to Rwanda のバックエンドパッケージ。
Backend package for the A Click to Rwanda travel planner.
"""
