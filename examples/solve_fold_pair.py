"""Example: solve 0/1/2-fold routes between two endpoints with a fixed path length."""

from beambench import FoldEndpoint, calculate, fold_mirror_angles

CASES = [
    ("straight", FoldEndpoint((0.0, 0.0), 0.0), FoldEndpoint((200.0, 0.0), 0.0), 200.0),
    ("L-shape", FoldEndpoint((0.0, 0.0), 0.0), FoldEndpoint((100.0, 100.0), 90.0), 200.0),
    ("U-shape", FoldEndpoint((0.0, 0.0), 0.0), FoldEndpoint((0.0, 100.0), 180.0), 400.0),
    ("too short", FoldEndpoint((0.0, 0.0), 0.0), FoldEndpoint((0.0, 100.0), 180.0), 50.0),
]


def main() -> None:
    for label, first, second, target in CASES:
        geometry = calculate(first, second, target)
        print(f"{label}: {geometry.fold_count} fold(s), valid={geometry.valid}")
        if not geometry.valid:
            print(f"  error: {geometry.error}")
            continue
        for (x, y), angle in zip(geometry.folds, fold_mirror_angles(geometry)):
            print(f"  fold at ({x:.1f}, {y:.1f}), mirror {angle:.1f}°")
        print(f"  total length: {geometry.total_length:.1f}mm")


if __name__ == "__main__":
    main()
