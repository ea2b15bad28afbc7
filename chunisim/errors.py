"""
アプリケーション固有の例外定義モジュール。

API取得、入力レコードの検証、設定読み込み、シミュレーション処理で発生する例外を
分類して扱うために、基底例外および派生例外を定義する。
"""


class ChuniSimError(Exception):
    """レーティングシミュレータ全体の基底例外。"""


class FetchError(ChuniSimError):
    """chunirec API からのデータ取得に起因する例外。"""


class ValidationError(ChuniSimError):
    """入力レコードが必要な形式を満たさない場合の例外。"""


class ConfigError(ChuniSimError):
    """設定ファイルや環境変数が不正な場合の例外。"""


class SimulationError(ChuniSimError):
    """シミュレーションの入力パラメータが不正な場合の例外。"""
